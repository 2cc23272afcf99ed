import os
import sys


def _ensure_src_in_path() -> None:
    """Agrega la carpeta 'src' a sys.path para poder importar 'tienda_admin' sin instalar el paquete."""
    base_dir = os.path.dirname(os.path.abspath(__file__))
    src_dir = os.path.join(base_dir, 'src')
    if src_dir not in sys.path:
        sys.path.insert(0, src_dir)


def main() -> None:
    _ensure_src_in_path()
    from tienda_admin.__main__ import main as app_main  # type: ignore
    app_main()


if __name__ == '__main__':
    main()
