from __future__ import annotations

import copy
import re
import sys
from pathlib import Path
from typing import Any

import pytest

# Ensure `backend/` is on sys.path so `import contested.*` works in tests.
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))

from contested.db.dynamodb.errors import DdbConflict  # noqa: E402

# Every module that calls get_main_table() at request time.
REPO_MODULES = (
    "contested.repositories.users_repo",
    "contested.repositories.sessions_repo",
    "contested.repositories.profiles_repo",
    "contested.repositories.campaigns_repo",
    "contested.repositories.wizard_drafts_repo",
    "contested.repositories.matches_repo",
    "contested.repositories.offers_repo",
    "contested.repositories.bundles_repo",
    "contested.repositories.notifications_repo",
    "contested.repositories.subscription_history_repo",
)

_NOT_EXISTS = re.compile(r"^attribute_not_exists\((\S+)\)$")
_EXISTS = re.compile(r"^attribute_exists\((\S+)\)$")
_EQUALS = re.compile(r"^(\S+)\s*=\s*(:\w+)$")

_INDEX_ATTRS = {
    None: ("pk", "sk"),
    "GSI1": ("gsi1pk", "gsi1sk"),
    "GSI2": ("gsi2pk", "gsi2sk"),
    "GSI3": ("gsi3pk", "gsi3sk"),
}


class FakePage:
    def __init__(self, items, next_token=None):
        self.items = items
        self.next_token = next_token


class FakeTable:
    """
    In-memory stand-in for DynamoTable.

    Supports the condition vocabulary the repositories use
    (attribute_[not_]exists, `a = :v`, joined by AND) and boto3 Key
    conditions (=, begins_with, AND) for queries.
    """

    table_name = "fake"

    def __init__(self):
        self.items: dict[tuple[str, str], dict[str, Any]] = {}
        self.transactions: list[dict[str, Any]] = []

    # --- helpers ---

    @staticmethod
    def _k(key: dict[str, Any]) -> tuple[str, str]:
        return str(key["pk"]), str(key["sk"])

    @staticmethod
    def _clause_ok(current, clause, names, values) -> bool:
        def attr(name: str) -> str:
            return names.get(name, name) if name.startswith("#") else name

        m = _NOT_EXISTS.match(clause)
        if m:
            return current is None or attr(m.group(1)) not in current
        m = _EXISTS.match(clause)
        if m:
            return current is not None and attr(m.group(1)) in current
        m = _EQUALS.match(clause)
        if m:
            return current is not None and current.get(attr(m.group(1))) == values[m.group(2)]
        raise AssertionError(f"unsupported condition: {clause}")

    def _check(self, key, condition_expression, names=None, values=None) -> None:
        if not condition_expression:
            return
        current = self.items.get(self._k(key))
        for clause in condition_expression.split(" AND "):
            if not self._clause_ok(current, clause.strip(), names or {}, values or {}):
                raise DdbConflict(message="The conditional request failed", operation="ConditionCheck")

    def _matches(self, item: dict[str, Any], cond: Any) -> bool:
        expr = cond.get_expression()
        op = expr["operator"]
        vals = expr["values"]
        if op == "AND":
            return all(self._matches(item, v) for v in vals)
        if op == "=":
            return item.get(vals[0].name) == vals[1]
        if op == "begins_with":
            v = item.get(vals[0].name)
            return isinstance(v, str) and v.startswith(vals[1])
        raise AssertionError(f"unsupported key condition: {op}")

    # --- DynamoTable surface ---

    def get_item(self, *, key, consistent=False):
        it = self.items.get(self._k(key))
        return copy.deepcopy(it) if it else None

    def put_item(self, *, item, condition_expression=None, expression_attribute_names=None, expression_attribute_values=None):
        self._check(item, condition_expression, expression_attribute_names, expression_attribute_values)
        self.items[self._k(item)] = copy.deepcopy(item)
        return item

    def delete_item(self, *, key, condition_expression=None, expression_attribute_names=None, expression_attribute_values=None):
        self._check(key, condition_expression, expression_attribute_names, expression_attribute_values)
        self.items.pop(self._k(key), None)

    def update_fields(self, *, key, fields, condition_expression=None, expression_attribute_names=None, expression_attribute_values=None):
        self._check(key, condition_expression, expression_attribute_names, expression_attribute_values)
        k = self._k(key)
        new = copy.deepcopy(self.items.get(k)) or {"pk": k[0], "sk": k[1]}
        for name, value in fields.items():
            if value is None:
                new.pop(name, None)
            else:
                new[name] = copy.deepcopy(value)
        self.items[k] = new
        return copy.deepcopy(new)

    def query_page(
        self,
        *,
        key_condition_expression,
        index_name=None,
        limit=50,
        scan_index_forward=False,
        filter_expression=None,
        next_token=None,
    ):
        _, sk_attr = _INDEX_ATTRS[index_name]
        hits = [copy.deepcopy(it) for it in self.items.values() if self._matches(it, key_condition_expression)]
        hits.sort(key=lambda it: str(it.get(sk_attr) or ""), reverse=not scan_index_forward)
        if filter_expression is not None:
            hits = [it for it in hits if self._matches(it, filter_expression)]
        start = int(next_token or 0)
        end = start + max(1, int(limit or 50))
        page = hits[start:end]
        return FakePage(page, str(end) if end < len(hits) else None)

    def query_all(self, *, key_condition_expression, index_name=None, scan_index_forward=False, filter_expression=None, max_items=1000):
        pg = self.query_page(
            key_condition_expression=key_condition_expression,
            index_name=index_name,
            limit=max_items,
            scan_index_forward=scan_index_forward,
            filter_expression=filter_expression,
        )
        return pg.items

    # Transaction entries are plain dicts; transact_write applies them all or none.

    def tx_put(self, *, item, condition_expression=None, expression_attribute_names=None, expression_attribute_values=None):
        return {"op": "put", "item": item, "cond": condition_expression, "names": expression_attribute_names, "values": expression_attribute_values}

    def tx_delete(self, *, key, condition_expression=None, expression_attribute_names=None, expression_attribute_values=None):
        return {"op": "delete", "key": key, "cond": condition_expression, "names": expression_attribute_names, "values": expression_attribute_values}

    def tx_update_fields(self, *, key, fields, condition_expression=None, expression_attribute_names=None, expression_attribute_values=None):
        return {"op": "update", "key": key, "fields": fields, "cond": condition_expression, "names": expression_attribute_names, "values": expression_attribute_values}

    def tx_condition_check(self, *, key, condition_expression, expression_attribute_names=None, expression_attribute_values=None):
        return {"op": "check", "key": key, "cond": condition_expression, "names": expression_attribute_names, "values": expression_attribute_values}

    def transact_write(self, *, puts=(), deletes=(), updates=(), condition_checks=(), client_request_token=None, retry_policy=None):
        entries = [*condition_checks, *puts, *deletes, *updates]
        for e in entries:
            self._check(e.get("item") or e.get("key"), e["cond"], e["names"], e["values"])
        snapshot = copy.deepcopy(self.items)
        try:
            for e in entries:
                if e["op"] == "put":
                    self.items[self._k(e["item"])] = copy.deepcopy(e["item"])
                elif e["op"] == "delete":
                    self.items.pop(self._k(e["key"]), None)
                elif e["op"] == "update":
                    self.update_fields(key=e["key"], fields=e["fields"])
        except Exception:
            self.items = snapshot
            raise
        self.transactions.append({"entries": entries, "token": client_request_token})

    # --- test conveniences ---

    def by_prefix(self, pk_prefix: str) -> list[dict[str, Any]]:
        return [it for (pk, _), it in sorted(self.items.items()) if pk.startswith(pk_prefix)]


@pytest.fixture
def table(monkeypatch):
    import importlib

    fake = FakeTable()
    for name in REPO_MODULES:
        monkeypatch.setattr(importlib.import_module(name), "get_main_table", lambda: fake)
    return fake


@pytest.fixture(autouse=True)
def _reset_settings_and_limits():
    from contested.middleware.login_rate_limit import LoginRateLimitMiddleware
    from contested.settings import settings

    saved = {
        k: getattr(settings, k)
        for k in (
            "environment",
            "session_secret",
            "supabase_url",
            "supabase_jwt_secret",
            "matching_svc_url",
            "stripe_secret_key",
            "stripe_webhook_secret",
            "login_rate_limit_rpm",
            "ddb_table_name",
        )
    }
    settings.session_secret = "unit-test-secret"
    settings.supabase_jwt_secret = "supabase-test-secret"
    settings.matching_svc_url = None
    settings.stripe_secret_key = None
    settings.stripe_webhook_secret = None
    LoginRateLimitMiddleware.reset()
    yield
    for k, v in saved.items():
        setattr(settings, k, v)
    LoginRateLimitMiddleware.reset()


@pytest.fixture
def client(table):
    from fastapi.testclient import TestClient

    from contested.main import create_app

    return TestClient(create_app())


DEFAULT_PASSWORD = "correct-horse-42"


def register_user(client, *, role: str, email: str, first_name: str = "Pat", last_name: str = "Lee", **extra):
    r = client.post(
        "/api/auth/register",
        json={
            "email": email,
            "password": DEFAULT_PASSWORD,
            "firstName": first_name,
            "lastName": last_name,
            "role": role,
            **extra,
        },
    )
    assert r.status_code == 201, r.text
    body = r.json()
    token = body["session"]["access_token"]
    return {
        "id": body["user"]["id"],
        "email": email,
        "token": token,
        "headers": {"Authorization": f"Bearer {token}"},
        "body": body,
    }


@pytest.fixture
def athlete(client):
    u = register_user(client, role="athlete", email="jordan@athletes.io", first_name="Jordan")
    r = client.put(
        "/api/profile/athlete",
        headers=u["headers"],
        json={"name": "Jordan Reyes", "sport": "Basketball", "followerCount": 10000, "engagementRate": 0.5, "age": 20},
    )
    assert r.status_code == 200, r.text
    return u


@pytest.fixture
def business(client):
    u = register_user(client, role="business", email="owner@brand.io", first_name="Casey")
    r = client.put(
        "/api/profile/business",
        headers=u["headers"],
        json={"businessName": "Peak Hydration", "industry": "Beverages"},
    )
    assert r.status_code == 200, r.text
    return u


def make_staff(*, role: str, email: str):
    """Compliance/admin accounts are provisioned out of band, not via /register."""
    from contested.repositories import sessions_repo, users_repo

    account = users_repo.create_user(email=email, role=role, first_name="Sam", last_name="Staff")
    token, _ = sessions_repo.create_session(user_id=account["id"], role=role, email=email)
    return {"id": account["id"], "token": token, "headers": {"Authorization": f"Bearer {token}"}}
