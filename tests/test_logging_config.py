import json
import logging
import shutil
import sys
import unittest
from pathlib import Path
from uuid import uuid4

from loguru import logger

from life_manager.logging_config import InterceptHandler, setup_logging

PROJECT_ROOT = Path(__file__).resolve().parents[1]


class SetupLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"logging-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)
        self._log_path = self._tmp_dir / "app.log"

    def tearDown(self) -> None:
        logger.remove()
        logger.add(sys.stderr)
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def test_registers_file_consumer_and_skips_unknown_types(self) -> None:
        descriptions = setup_logging(
            "DEBUG",
            [{"type": "file", "path": str(self._log_path)}, {"type": "syslog"}],
        )

        logger.info("hello from the test")

        self.assertEqual([f"file ({self._log_path}, DEBUG)"], descriptions)
        self.assertIn("hello from the test", self._log_path.read_text())

    def test_per_consumer_level_overrides_default(self) -> None:
        descriptions = setup_logging("INFO", [{"type": "file", "path": str(self._log_path), "level": "ERROR"}])

        logger.warning("not written")
        logger.error("written")

        text = self._log_path.read_text()
        self.assertEqual([f"file ({self._log_path}, ERROR)"], descriptions)
        self.assertNotIn("not written", text)
        self.assertIn("written", text)

    def test_file_lines_carry_the_bound_session(self) -> None:
        setup_logging("INFO", [{"type": "file", "path": str(self._log_path)}])

        logger.info("outside")
        with logger.contextualize(session_id="s-42"):
            logger.info("inside")

        lines = self._log_path.read_text().splitlines()
        self.assertIn("| - |", lines[0])
        self.assertIn("| s-42 |", lines[1])

    def test_serialized_file_sink(self) -> None:
        descriptions = setup_logging("INFO", [{"type": "file", "path": str(self._log_path), "serialize": True}])

        logger.info("structured")

        record = json.loads(self._log_path.read_text().splitlines()[0])
        self.assertEqual([f"file ({self._log_path}, INFO, json)"], descriptions)
        self.assertEqual("structured", record["record"]["message"])

    def test_uvicorn_records_are_routed_to_loguru(self) -> None:
        setup_logging("INFO", [{"type": "file", "path": str(self._log_path)}])

        std_logger = logging.getLogger("uvicorn.error")
        std_logger.warning("Started server process")

        self.assertIsInstance(std_logger.handlers[0], InterceptHandler)
        self.assertFalse(std_logger.propagate)
        self.assertIn("Started server process", self._log_path.read_text())


if __name__ == "__main__":
    unittest.main()
