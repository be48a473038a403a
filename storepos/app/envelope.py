from typing import Any


def ok(data: Any, message: str = "OK") -> dict:
    return {"status": "success", "message": message, "data": data}
