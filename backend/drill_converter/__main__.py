# backend/drill_converter/__main__.py
import argparse
from typing import Optional, Sequence


def serve(host: str, port: int, log_level: str) -> None:
    import uvicorn

    uvicorn.run(
        "drill_converter.main:app",
        host=host,
        port=port,
        reload=False,
        log_level=log_level.lower(),
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="drill-converter")
    parser.add_argument("--host", "-H", default="127.0.0.1", help="Server host")
    parser.add_argument("--port", "-p", type=int, default=8000, help="Server port")
    parser.add_argument("--log-level", "-l", default="INFO", help="Logging level")

    args = parser.parse_args(argv)
    serve(host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
