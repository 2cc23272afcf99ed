import logging

from .app import MainWindow, create_qt_app
from .config import load_settings


def main() -> None:
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s',
    )
    app = create_qt_app()
    window = MainWindow(settings=settings)
    window.show()
    app.exec()


if __name__ == "__main__":
    main()
