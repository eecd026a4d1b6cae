from fastapi import FastAPI
from fastapi.testclient import TestClient

from shopilent.core.errors import AppError, ConcurrencyConflictError, ErrorType, NotFoundError
from shopilent.core.exception_handlers import setup_exception_handlers


def test_app_error_is_the_failure_type():
    error = AppError("Ledger unavailable.")

    assert error.error.type == ErrorType.FAILURE
    assert error.error.code == "failure"
    assert error.status_code == 500


def test_subclasses_map_onto_their_status():
    assert NotFoundError("missing").status_code == 404
    assert ConcurrencyConflictError("stale").error.code == "concurrency_conflict"
    assert ConcurrencyConflictError("stale").status_code == 409


def test_failure_is_rendered_as_a_500_envelope():
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/boom")
    async def boom():
        raise AppError("Ledger unavailable.", code="ledger_unavailable")

    response = TestClient(app).get("/boom")

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"] == {"code": "ledger_unavailable", "message": "Ledger unavailable."}
