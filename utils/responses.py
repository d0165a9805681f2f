from fastapi.responses import JSONResponse

from services.errors import ServiceError


def message_response(message, status=200, **data):
    return JSONResponse(
        status_code=status,
        content={"message": message, **data},
    )


def error_response(message, status=400, **data):
    return message_response(message, status=status, **data)


def service_error_response(error: ServiceError, status=None):
    return error_response(error.message, status=status or error.status_code)
