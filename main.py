import logging
from pathlib import Path

from dentalcare.application import ClinicApplication
from dentalcare.config import ConfigManager


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = ConfigManager(Path.cwd() / 'settings.json')
    with ClinicApplication(config) as app:
        app.backups.check()
        logging.getLogger("dentalcare").info(
            "%s: %d patients, %d doctors, %d users, last backup %s",
            app.clinic.clinic_name,
            len(app.clinic.patients),
            len(app.clinic.doctors),
            len(app.auth.users),
            app.backups.last_backup or "never",
        )


if __name__ == '__main__':
    main()
