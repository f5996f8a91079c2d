"""CLI entrypoint for running the gateway with uvicorn."""

from __future__ import annotations

import os

import uvicorn


def main() -> None:
    """Run the ASGI server."""

    uvicorn.run(
        "murph.app:create_app",
        factory=True,
        host=os.getenv("MURPH_HOST", "0.0.0.0"),
        port=int(os.getenv("MURPH_PORT", "8000")),
        reload=False,
    )


if __name__ == "__main__":  # pragma: no cover - manual invocation
    main()
