from fastapi import Request

from vision_telemetry.services.telemetry_service import TelemetryService


def get_telemetry(request: Request) -> TelemetryService:
    """The service created by the application lifespan."""
    return request.app.state.telemetry
