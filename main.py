"""Command line entry for running the PSU Leases API server."""

import argparse

import uvicorn


def main() -> None:
    """Serve server.app:app with uvicorn."""
    parser = argparse.ArgumentParser(description="Run the PSU Leases API.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()
    uvicorn.run("server.app:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
