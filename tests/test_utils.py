import json
import logging

import pytest
from werkzeug.datastructures import MultiDict

from crudx.schemas.query_schema import load_query_params, resolve_paging
from crudx.utils.logging_utils import LoggerManager, get_logger, log_context
from crudx.utils.logging_utils.manager import ContextAwareFormatter
from crudx.utils.query_utils import build_filters, param_values, plain_query_str
from crudx.utils.sort_utils import disambiguate, parse_sort, upcase_directions


class TestSortUtils:

    def test_parse_sort(self):
        assert parse_sort("name desc, t1.id") == [{"name": "DESC"}, {"t1.id": "ASC"}]
        assert parse_sort("") == []
        assert parse_sort(" , ") == []

    def test_parse_sort_rejects_bad_direction(self):
        with pytest.raises(ValueError):
            parse_sort("name up")

    def test_disambiguate(self):
        assert disambiguate("name DESC, id", ("id", "name")) == "t1.name DESC, t1.id"
        assert disambiguate("username, t1.name, parts.id", ("id", "name")) == "username, t1.name, parts.id"
        assert disambiguate("id", ("id",), alias="w") == "w.id"
        assert disambiguate("id", ()) == "id"

    def test_upcase_directions(self):
        assert upcase_directions("t1.id desc, name Asc") == "t1.id DESC, name ASC"
        assert upcase_directions("description") == "description"


class TestQueryUtils:

    def test_param_values(self):
        assert param_values(MultiDict([("a", "1"), ("a", "2")]), "a") == ["1", "2"]
        assert param_values({"a": 3}, "a") == ["3"]
        assert param_values({"a": ["x", "y"]}, "a") == ["x", "y"]
        assert param_values({}, "a") == []

    def test_build_filters_case_insensitive(self):
        clauses, plain = build_filters(["name"], {"name": "Al*"}, case_insensitive=True)
        assert clauses == [("name", {"ilike": ["Al%"]})]
        assert plain == {"name": ["Al*"]}

    def test_build_filters_empty(self):
        assert build_filters([], {"name": "x"}) == ([], {})
        assert build_filters(["name"], {"name": ["", "  "]}) == ([], {})

    def test_plain_query_str_sorted(self):
        assert plain_query_str({"b": ["2"], "a": ["1", "3"], "c": [" "]}) == "a = 1 or 3 AND b = 2"


class TestQueryParamsSchema:

    def test_coerces_integers(self):
        data, errors = load_query_params({"page": "2", "page_size": "15", "order": " name "})
        assert errors == {}
        assert data == {"page": 2, "page_size": 15, "order": "name"}

    def test_keeps_valid_values(self):
        data, errors = load_query_params({"page": "x", "page_size": "15"})
        assert "page" in errors
        assert data["page_size"] == 15
        assert data["page"] is None

    def test_resolve_paging(self):
        assert resolve_paging(None, None, default_size=50, max_size=200) == (1, 50, 0)
        assert resolve_paging(3, 300, default_size=50, max_size=200) == (3, 200, 400)
        assert resolve_paging(-1, 0, default_size=50, max_size=200) == (1, 50, 0)


class TestLogging:

    def test_category_logger_writes_file(self, tmp_path):
        manager = LoggerManager(base_dir=str(tmp_path), enable_console=False, mirror_app_handlers=False)
        logger = manager.get_logger("query")
        with log_context(model="Widget"):
            logger.info("built query")
        manager.shutdown()
        text = (tmp_path / "query.log").read_text()
        assert "built query" in text
        assert "model=Widget" in text

    def test_unknown_category_goes_to_application_log(self, tmp_path):
        manager = LoggerManager(base_dir=str(tmp_path), enable_console=False, mirror_app_handlers=False)
        logger = manager.get_logger("Audit")
        logger.warning("hello")
        manager.shutdown()
        assert logger.name == "crudx.app"
        assert "hello" in (tmp_path / "application.log").read_text()
        assert not (tmp_path / "audit.log").exists()

    def test_json_formatter(self):
        formatter = ContextAwareFormatter(json_format=True, static_fields={"service": "crudx"})
        record = logging.LogRecord("crudx.query", logging.INFO, __file__, 1, "hi %s", ("there",), None)
        with log_context(model="Widget"):
            payload = json.loads(formatter.format(record))
        assert payload["message"] == "hi there"
        assert payload["service"] == "crudx"
        assert payload["context"] == {"model": "Widget"}

    def test_app_logger_configured(self, app):
        assert get_logger("model").name == "crudx.model"
