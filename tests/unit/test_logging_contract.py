"""
Tests specifically for logging contract enforcement.

No kwargs to logger; only extra={"context": {...}} allowed.
"""

import ast
import json
import logging
import unittest
from pathlib import Path
from typing import List, Dict, Any

from core.logging import (
    ConsoleFormatter,
    JSONFormatter,
    clear_global_context,
    get_logger,
    set_global_context,
)

PROJECT_ROOT = Path(__file__).parent.parent.parent

SCANNED_PACKAGES = ["core", "config", "chains", "enclave", "storage", "events", "deals", "monitoring"]


class TestLoggingContractEnforcement(unittest.TestCase):
    """AST-based tests for logging contract."""

    ALLOWED_KWARGS = {"exc_info", "extra", "stack_info", "stacklevel"}

    def _find_logger_violations(self, source_code: str) -> List[Dict[str, Any]]:
        """Find logger calls with invalid kwargs using AST."""
        violations = []

        tree = ast.parse(source_code)

        for node in ast.walk(tree):
            if not isinstance(node, ast.Call):
                continue

            if not isinstance(node.func, ast.Attribute):
                continue

            # Check if it's a logger method
            method_name = node.func.attr
            if method_name not in ("debug", "info", "warning", "error", "critical", "exception"):
                continue

            obj = node.func.value
            is_logger = False

            if isinstance(obj, ast.Name):
                is_logger = "log" in obj.id.lower() or obj.id == "logger"
            elif isinstance(obj, ast.Attribute):
                is_logger = "log" in obj.attr.lower() or obj.attr == "logger"

            if not is_logger:
                continue

            for kw in node.keywords:
                if kw.arg and kw.arg not in self.ALLOWED_KWARGS:
                    violations.append({
                        "line": node.lineno,
                        "method": method_name,
                        "invalid_kwarg": kw.arg,
                    })

        return violations

    def _source_files(self) -> List[Path]:
        files = [PROJECT_ROOT / "run_operator.py"]
        for package in SCANNED_PACKAGES:
            files.extend(sorted((PROJECT_ROOT / package).glob("*.py")))
        return [f for f in files if f.exists()]

    def test_sources_have_no_invalid_kwargs(self):
        """Operator sources pass only allowed logger kwargs."""
        files = self._source_files()
        self.assertGreater(len(files), 10)

        msg = ""
        for filepath in files:
            violations = self._find_logger_violations(filepath.read_text(encoding="utf-8"))
            for v in violations:
                msg += f"  {filepath.relative_to(PROJECT_ROOT)}:{v['line']}: logger.{v['method']}(..., {v['invalid_kwarg']}=...)\n"

        if msg:
            self.fail(f"Found logging violations:\n{msg}")

    def test_detector_flags_bad_kwargs(self):
        """The AST scan catches structlog-style kwargs."""
        violations = self._find_logger_violations('logger.info("Deal created", deal_id=deal.id)\n')

        self.assertEqual(len(violations), 1)
        self.assertEqual(violations[0]["invalid_kwarg"], "deal_id")


class TestLoggingContextCapture(unittest.TestCase):
    """Tests that context is properly captured in log records."""

    def setUp(self):
        """Set up test logger with capturing handler."""
        self.captured_records = []

        class CapturingHandler(logging.Handler):
            def __init__(self, records_list):
                super().__init__()
                self.records = records_list

            def emit(self, record):
                self.records.append(record)

        name = f"test_capture_{id(self)}"
        base = logging.getLogger(name)
        base.setLevel(logging.DEBUG)
        base.handlers = []
        base.propagate = False
        self.handler = CapturingHandler(self.captured_records)
        base.addHandler(self.handler)
        self.logger = get_logger(name, component="registry")

    def tearDown(self):
        clear_global_context()

    def test_context_merged_with_adapter_context(self):
        """Call context is merged with the adapter's default context."""
        self.logger.info(
            "Registered deposit",
            extra={"context": {"deposit_id": "abc", "amount": 10}}
        )

        record = self.captured_records[0]
        self.assertEqual(record.context, {"component": "registry", "deposit_id": "abc", "amount": 10})

    def test_exc_info_with_context(self):
        """exc_info works alongside context."""
        try:
            raise ValueError("Test error")
        except ValueError:
            self.logger.error(
                "Caught error",
                exc_info=True,
                extra={"context": {"operation": "test"}}
            )

        record = self.captured_records[0]
        self.assertIsNotNone(record.exc_info)
        self.assertEqual(record.context["operation"], "test")

    def test_json_formatter_includes_global_context(self):
        """JSON output carries global and call context."""
        set_global_context(service="salad-operator")
        self.logger.info("Quorum", extra={"context": {"quorum": 2}})

        entry = json.loads(JSONFormatter().format(self.captured_records[0]))

        self.assertEqual(entry["message"], "Quorum")
        self.assertEqual(entry["level"], "INFO")
        self.assertEqual(entry["context"]["service"], "salad-operator")
        self.assertEqual(entry["context"]["quorum"], 2)

    def test_console_formatter(self):
        """Console output shows context inline."""
        self.logger.warning("Deposit rejected", extra={"context": {"code": "INVALID_SIGNATURE"}})

        line = ConsoleFormatter().format(self.captured_records[0])

        self.assertIn("WARNING", line)
        self.assertIn("code=INVALID_SIGNATURE", line)


if __name__ == "__main__":
    unittest.main()
