import logging
import os


def _resolve_port() -> int:
    raw = os.getenv("HABLA_PORT", "8000")
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Invalid HABLA_PORT %r; using 8000", raw)
        return 8000


def main() -> None:
    import uvicorn

    host = os.getenv("HABLA_HOST", "127.0.0.1")
    port = _resolve_port()
    uvicorn.run("habla.main:app", host=host, port=port, log_level="info")


if __name__ == "__main__":
    main()
