"""
Wspólne fixtures i atrapa klienta IMAP.
"""
from contextlib import contextmanager
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from mail_proxy.api import create_app
from mail_proxy.config import Settings
from mail_proxy.connection import ConnectionDescriptor, ProtocolConfig
from mail_proxy.imap_client import MailAddress, MailboxStatus, RawEnvelope, RawFolder, RawMessage
from mail_proxy.service import MailProxyService
from mail_proxy.smtp_client import SMTPSender


def make_message(sequence: int, uid: int = None, **kwargs) -> RawMessage:
    """Buduje surową wiadomość o podanym numerze sekwencyjnym."""
    uid = uid if uid is not None else 1000 + sequence
    envelope = RawEnvelope(
        from_=[MailAddress(address=kwargs.pop("from_address", "anna@example.com"), name=kwargs.pop("from_name", None))],
        to=[MailAddress(address="jan@example.com")],
        subject=kwargs.pop("subject", f"Wiadomość {sequence}"),
        date=kwargs.pop("date", datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)),
        message_id=kwargs.pop("message_id", f"<msg-{sequence}@example.com>"),
    )
    return RawMessage(
        uid=uid,
        sequence=sequence,
        envelope=envelope,
        flags=frozenset(kwargs.pop("flags", ())),
        child_parts=kwargs.pop("child_parts", 0),
        body=kwargs.pop("body", f"Treść {sequence}"),
    )


class FakeMailbox:
    """Atrapa IMAPMailbox trzymająca stan w pamięci i zapisująca wywołania."""

    def __init__(self, config, messages=None, folders=None, unseen=0, fail_on=()):
        self.config = config
        self.messages = list(messages or [])
        self.folders = list(folders or [RawFolder(path="INBOX", delimiter="/")])
        self.unseen = unseen
        self.fail_on = set(fail_on)
        self.flags = {msg.uid: set(msg.flags) for msg in self.messages}
        self.moved = {}
        self.calls = []
        self.connected = False
        self.locked_folder = None

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if name in self.fail_on:
            raise OSError(f"{name} failed")

    def connect(self):
        self._call("connect")
        self.connected = True

    def logout(self):
        if not self.connected:
            return
        self.connected = False
        self._call("logout")

    def shutdown(self):
        self.connected = False
        self._call("shutdown")

    @contextmanager
    def mailbox_lock(self, folder):
        self._call("lock", folder)
        self.locked_folder = folder
        try:
            yield folder
        finally:
            self.locked_folder = None
            self.calls.append(("unlock", folder))

    def list_folders(self):
        self._call("list")
        return list(self.folders)

    def status(self, folder):
        self._call("status", folder)
        return MailboxStatus(total_messages=len(self.messages), unseen=self.unseen)

    def fetch(self, page):
        self._call("fetch", page.sequence_set)
        for msg in sorted(self.messages, key=lambda m: m.sequence):
            if page.start <= msg.sequence <= page.end:
                yield msg

    def add_flags(self, uid, flags):
        self._call("add_flags", uid, tuple(flags))
        self.flags.setdefault(uid, set()).update(flags)

    def remove_flags(self, uid, flags):
        self._call("remove_flags", uid, tuple(flags))
        self.flags.setdefault(uid, set()).difference_update(flags)

    def move(self, uid, folder):
        self._call("move", uid, folder)
        self.moved[uid] = folder


class FakeMailboxFactory:
    """Fabryka atrap; pamięta utworzone sesje."""

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.instances = []

    def __call__(self, config):
        mailbox = FakeMailbox(config, **self.kwargs)
        self.instances.append(mailbox)
        return mailbox

    @property
    def last(self) -> FakeMailbox:
        return self.instances[-1]


# ============================================
# Fixtures
# ============================================


@pytest.fixture
def settings():
    """Zwraca testowe ustawienia."""
    return Settings(_env_file=None, log_format="text")


@pytest.fixture
def connection():
    """Zwraca przykładowy deskryptor połączenia."""
    return ConnectionDescriptor(
        email="jan@example.com",
        encrypted_password="c2VjcmV0",
        imap_host="imap.example.com",
        smtp_host="smtp.example.com",
    )


@pytest.fixture
def imap_config():
    return ProtocolConfig(host="imap.example.com", port=993, secure=True, user="jan@example.com", password="secret")


@pytest.fixture
def mailbox_factory():
    return FakeMailboxFactory(messages=[make_message(seq) for seq in range(1, 101)], unseen=7)


@pytest.fixture
def sender():
    sender = MagicMock(spec=SMTPSender)
    sender.send.return_value = "<generated@example.com>"
    return sender


@pytest.fixture
def service(settings, mailbox_factory, sender):
    return MailProxyService(settings, mailbox_factory=mailbox_factory, sender=sender)


@pytest.fixture
def connection_json():
    return {
        "email": "jan@example.com",
        "encrypted_password": "c2VjcmV0",
        "imap_host": "imap.example.com",
        "smtp_host": "smtp.example.com",
    }


@pytest_asyncio.fixture
async def client(settings, service):
    """Klient HTTP do testów API."""
    app = create_app(settings, service=service)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
