from __future__ import annotations

import collections
import gzip
import logging
import subprocess
import threading
from typing import IO, Iterable, Optional

from pgbackup.core.exceptions import DumpFailed

logger = logging.getLogger("pgbackup.dump")

_CHUNK_SIZE = 64 * 1024
_STDERR_TAIL_LINES = 50


def ensure_sslmode(database_url: str) -> str:
    """Append ``sslmode=require`` unless the connection string already names a mode."""
    if "sslmode=" in database_url:
        return database_url
    separator = "&" if "?" in database_url else "?"
    return f"{database_url}{separator}sslmode=require"


def build_dump_args(pg_dump_path: str, database_url: str, options: Iterable[str] = ()) -> list[str]:
    args = [pg_dump_path, "--dbname", ensure_sslmode(database_url), "--format=tar"]
    args.extend(option for option in options if option)
    return args


class _StderrReader(threading.Thread):
    """Drains the dump tool's stderr so a chatty process never blocks on a full pipe."""

    def __init__(self, stream: IO[bytes]):
        super().__init__(name="pg_dump-stderr", daemon=True)
        self._stream = stream
        self._tail: collections.deque[str] = collections.deque(maxlen=_STDERR_TAIL_LINES)

    def run(self) -> None:
        for raw in iter(self._stream.readline, b""):
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                self._tail.append(line)
                logger.info("[pg_dump] %s", line)
        self._stream.close()

    @property
    def text(self) -> str:
        return "\n".join(self._tail)


class DumpProducer:
    """Runs pg_dump and streams its tar output through gzip into a local file."""

    def __init__(self, database_url: str, options: Iterable[str] = (), pg_dump_path: str = "pg_dump"):
        self._database_url = database_url
        self._options = list(options)
        self._pg_dump_path = pg_dump_path

    @classmethod
    def from_settings(cls, settings) -> "DumpProducer":
        return cls(settings.database_url, settings.dump_options, settings.pg_dump_path)

    @property
    def args(self) -> list[str]:
        return build_dump_args(self._pg_dump_path, self._database_url, self._options)

    def dump_to_file(self, file_path: str) -> None:
        logger.info("Dumping DB to file...")

        try:
            out = open(file_path, "wb")
        except OSError as exc:
            raise DumpFailed(f"Cannot create archive file {file_path}", detail=str(exc)) from exc

        try:
            process = subprocess.Popen(
                self.args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            out.close()
            raise DumpFailed("pg_dump spawn error", detail=str(exc)) from exc

        stderr_reader = _StderrReader(process.stderr)
        stderr_reader.start()

        write_error: Optional[BaseException] = None
        try:
            # GzipFile never flushes its fileobj, so the tail of the archive
            # only hits the disk on flush/close; both must sit inside the guard.
            with out:
                with gzip.GzipFile(fileobj=out, mode="wb") as gz:
                    for chunk in iter(lambda: process.stdout.read(_CHUNK_SIZE), b""):
                        gz.write(chunk)
                out.flush()
        except (OSError, ValueError) as exc:
            write_error = exc
            process.kill()
        finally:
            process.stdout.close()
            returncode = process.wait()
            stderr_reader.join()

        if write_error is not None:
            raise DumpFailed(
                "Writing compressed archive failed",
                returncode=returncode,
                stderr=stderr_reader.text,
                detail=str(write_error),
            ) from write_error
        if returncode != 0:
            raise DumpFailed(
                f"pg_dump exited with code {returncode}",
                returncode=returncode,
                stderr=stderr_reader.text,
            )

        logger.info("DB dumped to file...")
