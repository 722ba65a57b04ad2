#     The Certora Prover
#     Copyright (C) 2025  Certora Ltd.
#
#     This program is free software: you can redistribute it and/or modify
#     it under the terms of the GNU General Public License as published by
#     the Free Software Foundation, version 3 of the License.
#
#     This program is distributed in the hope that it will be useful,
#     but WITHOUT ANY WARRANTY; without even the implied warranty of
#     MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#     GNU General Public License for more details.
#
#     You should have received a copy of the GNU General Public License
#     along with this program.  If not, see <https://www.gnu.org/licenses/>.

import logging
import sys
from pathlib import Path
from types import TracebackType
from typing import Any, Dict, Iterable, List, Optional, Type

from Shared.decoderUtils import write_json_file, red_text, orange_text

# every topic the decoder logs on
DECODER_TOPICS = ["ast", "conf", "run", "storage_decoder", "type_resolution", "validation"]
# the topics whose warnings are decode aborts
ABORT_TOPICS = ["storage_decoder", "type_resolution"]


class LevelPrefixFormatter(logging.Formatter):
    """
    Prefixes every message with its level, warnings in orange and errors in red
    """

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        if record.levelno >= logging.ERROR:
            level = red_text(record.levelname)
        elif record.levelno == logging.WARNING:
            level = orange_text(record.levelname)
        else:
            level = record.levelname
        return f"{level}: {msg}"


class TopicFilter(logging.Filter):
    """
    Lets through the messages of the given topics, and warnings and errors of any topic
    """

    def __init__(self, topics: Iterable[str]) -> None:
        super().__init__()
        self.topics = {t.strip() for t in topics}

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.WARNING or record.name in self.topics


class DecodeAbortHandler(logging.NullHandler):
    """
    Gathers every decode abort (a warning on one of ABORT_TOPICS) into a JSON report, written when the handler
    is closed:
    {
        "aborts": [
            {
                "topic": "storage_decoder",
                "message": "uint256[] at 0x3 has length 18446744073709551616, more than the limit of 10000"
            }
        ]
    }
    """

    def __init__(self, report_file: Path) -> None:
        super().__init__()
        self.report_file = report_file
        self.aborts: List[Dict[str, Any]] = []

    def handle(self, record: logging.LogRecord) -> bool:
        if record.name in ABORT_TOPICS and record.levelno == logging.WARNING:
            self.aborts.append({"topic": record.name, "message": (record.getMessage().splitlines() or [""])[0]})
        return True

    def close(self) -> None:
        write_json_file({"aborts": self.aborts}, self.report_file)
        super().close()


class DebugLogHandler(logging.FileHandler):
    """
    Writes every message of the decoder topics, debug messages included, to a file
    """

    def __init__(self, debug_log_file: Path) -> None:
        super().__init__(debug_log_file)
        self.setLevel(logging.DEBUG)
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s - %(message)s"))
        self.addFilter(TopicFilter(DECODER_TOPICS))


class LoggingManager:
    """
    Installs the handlers of a single decodeStorage run on the root logger, and removes them when the run is over.
    Use as a context manager, or call tear_down() explicitly.
    """

    def __init__(self, quiet: bool = False, debug: bool = False,
                 debug_topics: Optional[List[str]] = None,
                 show_debug_topics: bool = False,
                 debug_log_file: Optional[Path] = None,
                 abort_report_file: Optional[Path] = None) -> None:
        """
        @param quiet: only warnings and errors are printed. Overrides debug.
        @param debug: debug messages are printed
        @param debug_topics: if debugging, only the debug messages of these topics are printed (all if empty)
        @param show_debug_topics: every printed message is prefixed with its topic
        @param debug_log_file: if given, all messages of the decoder topics are also written to this file
        @param abort_report_file: if given, all decode aborts are gathered into this JSON file
        """
        self.is_debugging = debug and not quiet

        self.stdout_handler = logging.StreamHandler(stream=sys.stdout)
        if quiet:
            self.stdout_handler.setLevel(logging.WARNING)
        else:
            self.stdout_handler.setLevel(logging.DEBUG if debug else logging.INFO)
        if self.is_debugging and debug_topics:
            self.stdout_handler.addFilter(TopicFilter(debug_topics))

        base_message = "%(name)s - %(message)s" if show_debug_topics else "%(message)s"
        if sys.stdout.isatty():
            self.stdout_handler.setFormatter(LevelPrefixFormatter(base_message))
        else:
            self.stdout_handler.setFormatter(logging.Formatter(f"%(levelname)s: {base_message}"))

        self.handlers: List[logging.Handler] = [self.stdout_handler]
        if debug_log_file is not None:
            self.handlers.append(DebugLogHandler(debug_log_file))
        if abort_report_file is not None:
            self.handlers.append(DecodeAbortHandler(abort_report_file))

        self.orig_root_log_level = logging.root.level  # restored by tear_down
        logging.root.setLevel(logging.NOTSET)
        for handler in self.handlers:
            logging.root.addHandler(handler)

    def tear_down(self) -> None:
        """
        Closes all handlers and restores the root logger to the state it was in before this class was constructed
        """
        logging.root.setLevel(self.orig_root_log_level)
        while self.handlers:
            handler = self.handlers.pop()
            logging.root.removeHandler(handler)
            try:
                handler.close()
            except OSError as e:
                logging.warning(f"Failed to close {handler}: {repr(e)}")

    def __enter__(self) -> 'LoggingManager':
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]], exc: Optional[BaseException],
                 tb: Optional[TracebackType]) -> None:
        self.tear_down()
