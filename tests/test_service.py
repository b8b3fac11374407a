"""
Tests for service wiring: CRUD-only mode and the persisted audit trail.
"""

import asyncio
import io

import pytest

from domain_sniper.config import MonitorConfig, SystemConfig
from domain_sniper.enums import LogLevel
from domain_sniper.exceptions import NotInitializedError
from domain_sniper.service import SniperService, parse_log_level
from domain_sniper.store import Store

from ovh_stub import FakeOVH, make_client, make_config


def crud_only_service() -> SniperService:
    config = SystemConfig(
        registrar=make_config(consumer_key=None),
        monitor=MonitorConfig(expiry_lookup=False),
    )
    return SniperService(config, store=Store(), log_stream=io.StringIO())


def test_crud_only_mode() -> None:
    service = crud_only_service()

    assert not service.registrar_ready
    assert service.monitor is None
    with pytest.raises(NotInitializedError) as exc_info:
        service.require_scheduler()
    assert exc_info.value.details["missing"] == ["OVH_CONSUMER_KEY"]


def test_log_entries_are_persisted_with_domain() -> None:
    service = crud_only_service()

    domain = service.add_domain("example.com")
    service.update_domain(domain.id, auto_purchase_enabled=True)
    service.remove_domain(domain.id)

    logs = service.store.recent_logs(10)
    assert [entry.message for entry in logs] == [
        "Domain removed: example.com",
        "Settings updated for example.com",
        "Domain added: example.com",
    ]
    assert {entry.domain for entry in logs} == {"example.com"}
    assert service.store.list_domains() == []


def test_debug_entries_are_not_persisted() -> None:
    service = crud_only_service()

    service.logger.debug("service", "noise", {"domain": "example.com"})

    assert service.store.recent_logs(10) == []


def test_close_releases_registrar() -> None:
    fake = FakeOVH()
    client = make_client(fake)
    config = SystemConfig(registrar=make_config(), monitor=MonitorConfig(expiry_lookup=False))
    service = SniperService(config, store=Store(), registrar=client, log_stream=io.StringIO())

    assert service.scheduler is not None
    asyncio.run(service.close())

    assert not service.scheduler.is_running()


@pytest.mark.parametrize("raw, level", [
    ("info", LogLevel.INFO),
    ("WARN", LogLevel.WARNING),
    ("err", LogLevel.ERROR),
    ("debug", LogLevel.DEBUG),
])
def test_parse_log_level(raw, level) -> None:
    assert parse_log_level(raw) == level
