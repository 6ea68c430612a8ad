"""
Incident Responder - Entry Point
================================

Runs the responder API (and with it the incident pipeline) under uvicorn.
"""

import uvicorn

from incident_responder.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "incident_responder.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )


if __name__ == "__main__":
    main()
