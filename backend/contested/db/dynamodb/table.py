from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable

from boto3.dynamodb.types import TypeSerializer

from .client import dynamodb_client, table_resource
from .errors import DdbInternal, DdbValidation
from .pagination import decode_next_token, encode_next_token
from .retry import RetryPolicy, ddb_call

# DynamoDB's hard cap on items per TransactWriteItems call.
MAX_TRANSACT_ITEMS = 100
MAX_PAGE_SIZE = 500

# Bundle creation writes up to ~55 items; contention on the campaign row is
# likely when a business double-submits, so retry a little longer.
TRANSACTION_RETRY = RetryPolicy(max_attempts=6, base_delay_s=0.08, max_delay_s=1.5)

_serializer = TypeSerializer()


def to_ddb(value: Any) -> Any:
    """Recursively convert floats to Decimal (boto3 rejects float)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_ddb(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_ddb(v) for v in value]
    return value


def from_ddb(value: Any) -> Any:
    """Inverse of to_ddb, so scores and follower counts serialize as JSON numbers."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_ddb(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_ddb(v) for v in value]
    if isinstance(value, set):
        return sorted(from_ddb(v) for v in value)
    return value


def _attribute_values(values: dict[str, Any]) -> dict[str, Any]:
    # Low-level client shape: {"S": ...}, {"N": ...}.
    return {k: _serializer.serialize(to_ddb(v)) for k, v in values.items()}


def build_set_update(
    fields: dict[str, Any],
    *,
    prefix: str = "f",
) -> tuple[str, dict[str, str], dict[str, Any]]:
    """Build an UpdateExpression from a flat field map.

    `None` values are REMOVEd; everything else is SET. Every attribute name is
    aliased, since several of ours (status, name, type) are reserved words.
    """
    sets: list[str] = []
    removes: list[str] = []
    names: dict[str, str] = {}
    values: dict[str, Any] = {}
    for i, (attr, value) in enumerate(fields.items()):
        alias = f"#{prefix}{i}"
        names[alias] = str(attr)
        if value is None:
            removes.append(alias)
        else:
            placeholder = f":{prefix}{i}"
            values[placeholder] = to_ddb(value)
            sets.append(f"{alias} = {placeholder}")

    clauses = []
    if sets:
        clauses.append("SET " + ", ".join(sets))
    if removes:
        clauses.append("REMOVE " + ", ".join(removes))
    if not clauses:
        raise ValueError("no fields to update")
    return " ".join(clauses), names, values


@dataclass(frozen=True, slots=True)
class Condition:
    expression: str | None = None
    names: dict[str, str] | None = None
    values: dict[str, Any] | None = None

    def resource_kwargs(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.expression:
            out["ConditionExpression"] = self.expression
        if self.names:
            out["ExpressionAttributeNames"] = dict(self.names)
        if self.values:
            out["ExpressionAttributeValues"] = to_ddb(self.values)
        return out

    def merge_client(self, entry: dict[str, Any]) -> dict[str, Any]:
        if self.expression:
            entry["ConditionExpression"] = self.expression
        if self.names:
            entry.setdefault("ExpressionAttributeNames", {}).update(self.names)
        if self.values:
            entry.setdefault("ExpressionAttributeValues", {}).update(_attribute_values(self.values))
        return entry


@dataclass(slots=True)
class Page:
    items: list[dict[str, Any]]
    next_token: str | None


def _item_key(item: dict[str, Any]) -> dict[str, Any]:
    return {"pk": item.get("pk"), "sk": item.get("sk")}


class DynamoTable:
    """
    The single Contested table.

    Items are addressed by `pk`/`sk` (USER#id/ACCOUNT, CAMPAIGN#id/META,
    BUNDLE#id/MEMBER#athlete, ...). GSI1-GSI3 hold the per-owner and
    reviewer listings. Repositories own the key layout; this class only
    speaks DynamoDB.
    """

    def __init__(self, *, table_name: str):
        self.table_name = str(table_name)
        self._table = table_resource(self.table_name)
        self._client = dynamodb_client()

    def _call(self, operation: str, fn, *, key: dict[str, Any] | None = None, retry_policy=None):
        return ddb_call(operation, fn, table_name=self.table_name, key=key, retry_policy=retry_policy)

    # --- single items ---

    def get_item(self, *, key: dict[str, Any], consistent: bool = False) -> dict[str, Any] | None:
        resp = self._call(
            "GetItem",
            lambda: self._table.get_item(Key=key, ConsistentRead=bool(consistent)),
            key=key,
        )
        item = resp.get("Item")
        return from_ddb(item) if item else None

    def put_item(
        self,
        *,
        item: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        cond = Condition(condition_expression, expression_attribute_names, expression_attribute_values)
        self._call(
            "PutItem",
            lambda: self._table.put_item(Item=to_ddb(item), **cond.resource_kwargs()),
            key=_item_key(item),
        )
        return item

    def delete_item(
        self,
        *,
        key: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> None:
        cond = Condition(condition_expression, expression_attribute_names, expression_attribute_values)
        self._call(
            "DeleteItem",
            lambda: self._table.delete_item(Key=key, **cond.resource_kwargs()),
            key=key,
        )

    def update_fields(
        self,
        *,
        key: dict[str, Any],
        fields: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """SET/REMOVE a flat field map (upsert) and return the item as stored."""
        expr, names, values = build_set_update(fields)
        names.update(expression_attribute_names or {})
        values.update(to_ddb(expression_attribute_values or {}))
        kwargs: dict[str, Any] = {
            "Key": key,
            "UpdateExpression": expr,
            "ExpressionAttributeNames": names,
            "ReturnValues": "ALL_NEW",
        }
        if values:
            kwargs["ExpressionAttributeValues"] = values
        if condition_expression:
            kwargs["ConditionExpression"] = condition_expression

        resp = self._call("UpdateItem", lambda: self._table.update_item(**kwargs), key=key)
        out = resp.get("Attributes")
        return from_ddb(out) if out else None

    # --- queries ---

    def query_page(
        self,
        *,
        key_condition_expression: Any,
        index_name: str | None = None,
        limit: int = 50,
        scan_index_forward: bool = False,
        filter_expression: Any | None = None,
        next_token: str | None = None,
    ) -> Page:
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition_expression,
            "ScanIndexForward": bool(scan_index_forward),
            "Limit": max(1, min(MAX_PAGE_SIZE, int(limit or 50))),
        }
        if index_name:
            kwargs["IndexName"] = index_name
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression
        start_key = decode_next_token(next_token)
        if start_key:
            kwargs["ExclusiveStartKey"] = start_key

        resp = self._call("Query", lambda: self._table.query(**kwargs))
        return Page(
            items=[from_ddb(it) for it in (resp.get("Items") or [])],
            next_token=encode_next_token(resp.get("LastEvaluatedKey")),
        )

    def query_all(
        self,
        *,
        key_condition_expression: Any,
        index_name: str | None = None,
        scan_index_forward: bool = False,
        filter_expression: Any | None = None,
        max_items: int = 1000,
    ) -> list[dict[str, Any]]:
        """Follow cursors until exhausted or `max_items` collected."""
        out: list[dict[str, Any]] = []
        token: str | None = None
        while len(out) < max_items:
            page = self.query_page(
                key_condition_expression=key_condition_expression,
                index_name=index_name,
                limit=min(MAX_PAGE_SIZE, max_items - len(out)),
                scan_index_forward=scan_index_forward,
                filter_expression=filter_expression,
                next_token=token,
            )
            out.extend(page.items)
            token = page.next_token
            if not token:
                break
        return out[:max_items]

    # --- transactions ---

    def transact_write(
        self,
        *,
        puts: Iterable[dict[str, Any]] = (),
        deletes: Iterable[dict[str, Any]] = (),
        updates: Iterable[dict[str, Any]] = (),
        condition_checks: Iterable[dict[str, Any]] = (),
        client_request_token: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """
        Apply tx_* entries all-or-nothing. A failed condition on any entry
        raises DdbConflict with per-entry `cancellation_reasons`.
        """
        transact_items = [
            *({"ConditionCheck": c} for c in condition_checks),
            *({"Put": p} for p in puts),
            *({"Delete": d} for d in deletes),
            *({"Update": u} for u in updates),
        ]
        if not transact_items:
            return
        if len(transact_items) > MAX_TRANSACT_ITEMS:
            raise DdbValidation(
                message=f"Transaction has {len(transact_items)} items; the limit is {MAX_TRANSACT_ITEMS}",
                operation="TransactWriteItems",
                table_name=self.table_name,
            )

        kwargs: dict[str, Any] = {"TransactItems": transact_items}
        if client_request_token:
            # Idempotent for 10 minutes; DynamoDB caps the token at 36 chars.
            kwargs["ClientRequestToken"] = client_request_token[:36]
        self._call(
            "TransactWriteItems",
            lambda: self._client.transact_write_items(**kwargs),
            retry_policy=retry_policy or TRANSACTION_RETRY,
        )

    def tx_put(
        self,
        *,
        item: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return Condition(condition_expression, expression_attribute_names, expression_attribute_values).merge_client(
            {"TableName": self.table_name, "Item": _attribute_values(item)}
        )

    def tx_delete(
        self,
        *,
        key: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return Condition(condition_expression, expression_attribute_names, expression_attribute_values).merge_client(
            {"TableName": self.table_name, "Key": _attribute_values(key)}
        )

    def tx_update_fields(
        self,
        *,
        key: dict[str, Any],
        fields: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        expr, names, values = build_set_update(fields)
        entry: dict[str, Any] = {
            "TableName": self.table_name,
            "Key": _attribute_values(key),
            "UpdateExpression": expr,
            "ExpressionAttributeNames": names,
        }
        if values:
            entry["ExpressionAttributeValues"] = _attribute_values(values)
        return Condition(condition_expression, expression_attribute_names, expression_attribute_values).merge_client(
            entry
        )

    def tx_condition_check(
        self,
        *,
        key: dict[str, Any],
        condition_expression: str,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return Condition(condition_expression, expression_attribute_names, expression_attribute_values).merge_client(
            {"TableName": self.table_name, "Key": _attribute_values(key)}
        )


def get_main_table() -> DynamoTable:
    from ...settings import settings

    if not settings.ddb_table_name:
        raise DdbInternal(message="DDB_TABLE_NAME is not set", operation="Config")
    return DynamoTable(table_name=settings.ddb_table_name)
