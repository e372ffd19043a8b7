"""test_lambda_function.py — Mock-based tests for the query_proxy Lambda.

The Notion client and week mappings are patched; nothing touches the network.

Run: python3 -m pytest test_lambda_function.py -v
"""

from __future__ import annotations

import importlib.util
import json
import os
import sys
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(__file__))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "shared_layer", "python"))

_spec = importlib.util.spec_from_file_location(
    "query_proxy",
    os.path.join(os.path.dirname(__file__), "lambda_function.py"),
)
query_proxy = importlib.util.module_from_spec(_spec)
sys.modules[_spec.name] = query_proxy
_spec.loader.exec_module(query_proxy)

from taskbank_shared.notion_client import NotionAPIError
from taskbank_shared.weeks import MappingError, WeekMappings

WEEK_1 = "2471a6f1-8c3e-80a1-9b52-d4e0f1c2a301"
WEEK_2 = "2471a6f1-8c3e-80a2-8f13-c7b9e4d5a302"

MAPPINGS = WeekMappings.from_document({
    "program_start_date": "2025-08-04",
    "total_weeks": 12,
    "week_numbers": {WEEK_1: 1, WEEK_2: 2},
    "scorecard_weeks": {},
})

PLANNED_FILTER = {"property": "Status", "select": {"equals": "📅 Planned"}}


def _page(page_id, week_ref=None, status="📅 Planned"):
    props = {
        "Task": {"title": [{"text": {"content": f"Task {page_id}"}}]},
        "Status": {"select": {"name": status}},
    }
    if week_ref:
        props["Week Reference"] = {"relation": [{"id": week_ref}]}
    return {"object": "page", "id": page_id, "properties": props}


def _make_event(body=None, method="POST"):
    return {
        "requestContext": {"http": {"method": method, "path": "/api/notion-proxy"}},
        "headers": {"content-type": "application/json"},
        "body": json.dumps(body) if body is not None else None,
    }


class QueryProxyMethodTests(unittest.TestCase):
    def test_options_preflight(self):
        resp = query_proxy.lambda_handler(_make_event(method="OPTIONS"), None)
        self.assertEqual(resp["statusCode"], 200)
        self.assertEqual(resp["body"], "")
        self.assertEqual(resp["headers"]["Access-Control-Allow-Origin"], "*")

    def test_get_not_allowed(self):
        resp = query_proxy.lambda_handler(_make_event(method="GET"), None)
        self.assertEqual(resp["statusCode"], 405)

    def test_invalid_json(self):
        event = _make_event()
        event["body"] = "{nope"
        resp = query_proxy.lambda_handler(event, None)
        self.assertEqual(resp["statusCode"], 400)


@patch.object(query_proxy, "load_week_mappings", return_value=MAPPINGS)
@patch.object(query_proxy, "current_week_number", return_value=2)
@patch.object(query_proxy, "NotionClient")
class QueryProxyTests(unittest.TestCase):
    def test_missing_token_or_database(self, mock_client_cls, _cw, _maps):
        for body in ({"database_id": "DB1"}, {"token": "secret_abc"}):
            resp = query_proxy.lambda_handler(_make_event(body), None)
            self.assertEqual(resp["statusCode"], 400)
            self.assertEqual(json.loads(resp["body"])["error"], "Missing token or database_id")
        mock_client_cls.assert_not_called()

    def test_planned_filter_annotates_results(self, mock_client_cls, _cw, _maps):
        mock_client_cls.return_value.query_database.return_value = {
            "object": "list",
            "results": [_page("p1", WEEK_2), _page("p2", "unmapped-week")],
            "has_more": False,
            "next_cursor": None,
        }

        resp = query_proxy.lambda_handler(
            _make_event({"token": "secret_abc", "database_id": "DB1", "filter": PLANNED_FILTER}),
            None,
        )

        self.assertEqual(resp["statusCode"], 200)
        body = json.loads(resp["body"])
        self.assertEqual(len(body["results"]), 2)
        self.assertEqual(body["results"][0]["weekNumber"], 2)
        self.assertTrue(body["results"][0]["isCurrentWeek"])
        self.assertIsNone(body["results"][1]["weekNumber"])
        self.assertFalse(body["results"][1]["isCurrentWeek"])
        self.assertEqual(body["results"][0]["computedStatus"], "📅 Planned")
        self.assertEqual(body["object"], "list")
        self.assertFalse(body["has_more"])
        self.assertEqual(body["currentWeek"], 2)

        mock_client_cls.assert_called_once_with("secret_abc")
        kwargs = mock_client_cls.return_value.query_database.call_args.kwargs
        self.assertEqual(kwargs["filter"], PLANNED_FILTER)
        self.assertEqual(kwargs["page_size"], 100)

    def test_page_without_week_reference(self, mock_client_cls, _cw, _maps):
        mock_client_cls.return_value.query_database.return_value = {
            "results": [{"id": "bare", "object": "page"}],
        }
        resp = query_proxy.lambda_handler(
            _make_event({"token": "secret_abc", "databaseId": "DB1"}), None
        )
        self.assertEqual(resp["statusCode"], 200)
        result = json.loads(resp["body"])["results"][0]
        self.assertIsNone(result["weekNumber"])
        self.assertEqual(result["computedStatus"], "📝 Draft")

    def test_removed_sort_is_stripped(self, mock_client_cls, _cw, _maps):
        mock_client_cls.return_value.query_database.return_value = {"results": []}
        sorts = [
            {"property": "Week", "direction": "ascending"},
            {"property": "Priority", "direction": "descending"},
        ]
        query_proxy.lambda_handler(
            _make_event({"token": "secret_abc", "database_id": "DB1", "sorts": sorts}), None
        )
        kwargs = mock_client_cls.return_value.query_database.call_args.kwargs
        self.assertEqual(kwargs["sorts"], [{"property": "Priority", "direction": "descending"}])

    def test_page_size_capped(self, mock_client_cls, _cw, _maps):
        mock_client_cls.return_value.query_database.return_value = {"results": []}
        query_proxy.lambda_handler(
            _make_event({"token": "secret_abc", "database_id": "DB1", "page_size": 500}), None
        )
        kwargs = mock_client_cls.return_value.query_database.call_args.kwargs
        self.assertEqual(kwargs["page_size"], 100)

    def test_page_size_not_integer(self, mock_client_cls, _cw, _maps):
        resp = query_proxy.lambda_handler(
            _make_event({"token": "secret_abc", "database_id": "DB1", "page_size": "lots"}), None
        )
        self.assertEqual(resp["statusCode"], 400)

    def test_notion_error_forwarded(self, mock_client_cls, _cw, _maps):
        mock_client_cls.return_value.query_database.side_effect = NotionAPIError(
            404, "Could not find database with ID: DB1.", code="object_not_found"
        )
        resp = query_proxy.lambda_handler(
            _make_event({"token": "secret_abc", "database_id": "DB1"}), None
        )
        self.assertEqual(resp["statusCode"], 404)
        body = json.loads(resp["body"])
        self.assertFalse(body["success"])
        self.assertEqual(body["code"], "object_not_found")
        self.assertIn("DB1", body["details"])

    def test_unexpected_error_is_500(self, mock_client_cls, _cw, _maps):
        mock_client_cls.return_value.query_database.side_effect = RuntimeError("boom")
        resp = query_proxy.lambda_handler(
            _make_event({"token": "secret_abc", "database_id": "DB1"}), None
        )
        self.assertEqual(resp["statusCode"], 500)
        body = json.loads(resp["body"])
        self.assertEqual(body["error"], "Internal server error")
        self.assertEqual(body["details"], "boom")

    def test_mapping_failure_is_500(self, mock_client_cls, _cw, mock_maps):
        mock_maps.side_effect = MappingError("s3://bucket/key: NoSuchKey")
        resp = query_proxy.lambda_handler(
            _make_event({"token": "secret_abc", "database_id": "DB1"}), None
        )
        self.assertEqual(resp["statusCode"], 500)
        mock_client_cls.return_value.query_database.assert_not_called()


if __name__ == "__main__":
    unittest.main()
