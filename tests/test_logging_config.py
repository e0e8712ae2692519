import logging
import shutil
import tempfile
import unittest
from pathlib import Path

from loguru import logger

from ops_broker.logging_config import setup_logging


class SetupLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = Path(tempfile.mkdtemp(prefix="logging-config-"))

    def tearDown(self) -> None:
        logger.remove()
        logging.basicConfig(handlers=[logging.NullHandler()], force=True)
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def test_registers_known_consumers_and_skips_unknown(self) -> None:
        path = self._tmp_dir / "logs" / "broker.log"
        descriptions = setup_logging(
            "DEBUG",
            [
                {"type": "file", "path": str(path), "serialize": True, "level": "WARNING"},
                {"type": "syslog"},
            ],
        )
        self.assertEqual([f"json file ({path}, WARNING)"], descriptions)
        self.assertTrue(path.parent.is_dir())

    def test_stdlib_records_reach_loguru(self) -> None:
        setup_logging("INFO", [])
        captured: list[str] = []
        logger.add(lambda message: captured.append(str(message)), level="INFO", format="{message}")

        logging.getLogger("uvicorn.error").warning("server warming up")
        logging.getLogger("anthropic").info("request sent")

        self.assertIn("server warming up", "".join(captured))
        self.assertIn("request sent", "".join(captured))


if __name__ == "__main__":
    unittest.main()
