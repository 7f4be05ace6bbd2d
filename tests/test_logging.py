import json
import logging

import pytest
from httpx import ASGITransport, AsyncClient
from loguru import logger

from corre_wallet.core.logging import REQUEST_ID_HEADER, configure_logging


@pytest.fixture
def json_logging():
    configure_logging(service_name="corre-wallet", environment="production", version="9.9.9", level="INFO")
    yield
    logger.remove()


def _lines(capsys) -> list[dict]:
    return [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.strip()]


def test_json_lines_carry_service_and_wallet_context(json_logging, capsys) -> None:
    with logger.contextualize(owner_id="owner-1", request_id="req-1"):
        logger.info("Granted wallet points", amount=5, cause="race")
    logger.debug("Below the configured level")

    [line] = _lines(capsys)
    assert line["message"] == "Granted wallet points"
    assert line["level"] == "info"
    assert line["service"] == "corre-wallet"
    assert line["environment"] == "production"
    assert line["version"] == "9.9.9"
    assert line["owner_id"] == "owner-1"
    assert line["request_id"] == "req-1"
    assert line["amount"] == 5
    assert line["cause"] == "race"


def test_unbound_context_is_omitted(json_logging, capsys) -> None:
    logger.warning("Wallet expiry worker disabled")

    [line] = _lines(capsys)
    assert "owner_id" not in line
    assert "request_id" not in line


def test_stdlib_records_are_routed_through_loguru(json_logging, capsys) -> None:
    logging.getLogger("corre_wallet.alembic").warning("Applied %s migrations", 1)
    logging.getLogger("sqlalchemy.engine").info("SELECT 1")

    [line] = _lines(capsys)
    assert line["message"] == "Applied 1 migrations"
    assert line["level"] == "warning"


@pytest.mark.asyncio
async def test_request_id_is_echoed_or_generated(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        echoed = await client.get("/healthz", headers={REQUEST_ID_HEADER: "req-42"})
        generated = await client.get("/healthz")

    assert echoed.headers[REQUEST_ID_HEADER] == "req-42"
    assert len(generated.headers[REQUEST_ID_HEADER]) == 32
