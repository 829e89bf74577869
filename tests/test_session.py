"""Tests for curlftp/session.py: Session lifecycle and the libcurl counter."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

import curlftp.session as session_mod
from curlftp.errors import AlreadyInitializedError, InvalidArgumentError, NotInitializedError
from curlftp.session import (
    ProgressHook,
    Protocol,
    RequestOptions,
    Session,
    SessionConfig,
    Settings,
    acquire_transport,
    active_clients,
    release_transport,
)


@pytest.fixture()
def engine_factory() -> MagicMock:
    return MagicMock(name="engine_factory")


@pytest.fixture()
def session(engine_factory: MagicMock) -> Session:
    return Session(engine_factory)


class TestProtocol:
    def test_scheme(self) -> None:
        assert Protocol.FTPES.scheme == "ftpes://"

    def test_uses_tls(self) -> None:
        assert Protocol.FTPS.uses_tls and Protocol.FTPES.uses_tls
        assert not Protocol.FTP.uses_tls
        assert not Protocol.SFTP.uses_tls


class TestConfigTypes:
    def test_settings_defaults(self) -> None:
        settings = Settings()
        assert settings.enable_log is True
        assert settings.enable_ssh is True
        assert settings.enable_trace is False

    def test_password_hidden_from_repr(self) -> None:
        config = SessionConfig(server="h", login="bob", password="hunter2")
        assert "hunter2" not in repr(config)
        assert config.userpwd == "bob:hunter2"

    def test_request_option_defaults(self) -> None:
        options = RequestOptions()
        assert options.timeout == 0
        assert options.active_port == "-"
        assert options.progress is None


class TestProgressHook:
    def test_true_continues(self) -> None:
        callback = MagicMock(return_value=True)
        hook = ProgressHook(callback, owner="owner")
        assert hook(10, 5, 0, 0) == 0
        callback.assert_called_once_with("owner", 10, 5, 0, 0)

    def test_false_aborts(self) -> None:
        hook = ProgressHook(MagicMock(return_value=False))
        assert hook(10, 5, 0, 0) == 1


class TestSessionLifecycle:
    def test_inactive_by_default(self, session: Session) -> None:
        assert session.active is False
        with pytest.raises(NotInitializedError):
            _ = session.handle
        with pytest.raises(NotInitializedError):
            _ = session.config

    def test_settings_default_without_session(self, session: Session) -> None:
        assert session.settings == Settings()

    def test_open_creates_engine(self, session: Session, engine_factory: MagicMock) -> None:
        session.open(SessionConfig(server="127.0.0.1"))
        assert session.active
        assert session.handle is engine_factory.return_value
        engine_factory.assert_called_once_with()

    def test_empty_host_rejected(self, session: Session, engine_factory: MagicMock) -> None:
        with pytest.raises(InvalidArgumentError, match="Empty host"):
            session.open(SessionConfig(server=""))
        engine_factory.assert_not_called()

    def test_double_open_keeps_existing_handle(
        self, session: Session, engine_factory: MagicMock
    ) -> None:
        session.open(SessionConfig(server="first"))
        handle = session.handle
        with pytest.raises(AlreadyInitializedError):
            session.open(SessionConfig(server="second"))
        assert session.handle is handle
        assert session.config.server == "first"

    def test_close_releases_engine(self, session: Session, engine_factory: MagicMock) -> None:
        session.open(SessionConfig(server="h"))
        session.close()
        engine_factory.return_value.close.assert_called_once_with()
        assert session.active is False

    def test_close_without_open_raises(self, session: Session) -> None:
        with pytest.raises(NotInitializedError):
            session.close()

    def test_reopen_after_close(self, session: Session, engine_factory: MagicMock) -> None:
        session.open(SessionConfig(server="h"))
        session.close()
        session.open(SessionConfig(server="h2"))
        assert session.config.server == "h2"
        assert engine_factory.call_count == 2


class TestTransportCounter:
    @pytest.fixture(autouse=True)
    def fresh_counter(self, monkeypatch: pytest.MonkeyPatch) -> MagicMock:
        monkeypatch.setattr(session_mod, "_session_count", 0)
        fake_pycurl = MagicMock()
        monkeypatch.setattr(session_mod, "pycurl", fake_pycurl)
        return fake_pycurl

    def test_first_acquire_initialises(self, fresh_counter: MagicMock) -> None:
        assert acquire_transport() == 1
        assert acquire_transport() == 2
        fresh_counter.global_init.assert_called_once_with(fresh_counter.GLOBAL_ALL)

    def test_last_release_cleans_up(self, fresh_counter: MagicMock) -> None:
        acquire_transport()
        acquire_transport()
        assert release_transport() == 1
        fresh_counter.global_cleanup.assert_not_called()
        assert release_transport() == 0
        fresh_counter.global_cleanup.assert_called_once_with()

    def test_extra_release_is_ignored(self, fresh_counter: MagicMock) -> None:
        assert release_transport() == 0
        assert active_clients() == 0
        fresh_counter.global_cleanup.assert_not_called()

    def test_reinitialises_after_full_release(self, fresh_counter: MagicMock) -> None:
        acquire_transport()
        release_transport()
        acquire_transport()
        assert fresh_counter.global_init.call_count == 2

    def test_client_lifecycle_balances_counter(self, fresh_counter: MagicMock) -> None:
        from curlftp.client import FTPClient

        with FTPClient(engine_factory=MagicMock()) as client:
            assert active_clients() == 1
            client.close()
            client.close()
        assert active_clients() == 0
        fresh_counter.global_cleanup.assert_called_once_with()
