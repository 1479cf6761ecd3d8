"""Run the service: ``python -m ratekeeper [--host 0.0.0.0] [--port 3000]``."""

import argparse

import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(prog="ratekeeper")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=3000)
    args = parser.parse_args()
    uvicorn.run("ratekeeper.main:create_app", factory=True, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
