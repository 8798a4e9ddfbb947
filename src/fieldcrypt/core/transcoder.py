"""
File transcoder: read a CSV/JSON file, transform the selected fields of every
record and write the result in the same format.

State machine for one run::

    IDLE -> READING -> PROCESSING -> WRITING -> DONE
              \\____________\\___________\\____-> FAILED

Field operations are independent and run on a bounded thread pool; the
results are put back by record index so the output order always matches the
input order. The derived key lives in a RunContext that is closed (zeroed)
as soon as the cryptographic work is finished, on success or failure.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from fieldcrypt.security.crypto import DEFAULT_ALGORITHM, get_suite
from fieldcrypt.security.kdf import KdfParams
from fieldcrypt.security.session import RunContext

from . import envelope as codec
from .exceptions import (
    AuthenticationFailure,
    FieldcryptError,
    MalformedEnvelopeError,
    ManifestError,
    UsageError,
)
from .formats import Document, parse, serialize
from .models import (
    FieldFailure,
    FileFormat,
    FileManifest,
    RunReport,
    TranscoderState,
    ValidationReport,
)
from .selector import overlapping_fields, replace_fields, select_fields
from .storage import STDIO, atomic_write, is_stdio, read_text

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4

# (record index, field name, value)
Task = Tuple[int, str, Any]


def default_output_path(source: Path, decrypting: bool) -> Path:
    """data.csv -> data.enc.csv when encrypting; data.enc.csv -> data.dec.csv when decrypting."""
    if is_stdio(source):
        return Path(STDIO)
    source = Path(source)
    stem, suffix = source.stem, source.suffix
    if decrypting:
        if stem.endswith(".enc"):
            stem = stem[: -len(".enc")]
        return source.with_name(f"{stem}.dec{suffix}")
    return source.with_name(f"{stem}.enc{suffix}")


class FileTranscoder:
    """Encrypts and decrypts selected fields of CSV/JSON files."""

    def __init__(self, workers: int = DEFAULT_WORKERS, strict: bool = False):
        if workers < 1:
            raise UsageError("workers must be at least 1")
        self.workers = workers
        self.strict = strict
        self.state = TranscoderState.IDLE

    # ------------------------------------------------------------------
    # State handling
    # ------------------------------------------------------------------

    def _enter(self, state: TranscoderState) -> None:
        logger.debug("transcoder %s -> %s", self.state.value, state.value)
        self.state = state

    def _run(self, body: Callable[[], Any]) -> Any:
        self._enter(TranscoderState.IDLE)
        try:
            result = body()
        except BaseException:
            self._enter(TranscoderState.FAILED)
            raise
        self._enter(TranscoderState.DONE)
        return result

    def _read(self, source: Path) -> Document:
        self._enter(TranscoderState.READING)
        doc = parse(source, read_text(source))
        logger.info("read %d %s record(s) from %s", len(doc.records), doc.file_format.value, source)
        return doc

    def _map(self, fn: Callable[[Task], Any], tasks: Sequence[Task]) -> List[Any]:
        # map() yields in submission order whatever order the workers finish in
        if self.workers == 1 or len(tasks) < 2:
            return [fn(task) for task in tasks]
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            return list(pool.map(fn, tasks))

    # ------------------------------------------------------------------
    # Encryption
    # ------------------------------------------------------------------

    def encrypt_file(
        self,
        source: Path | str,
        fields: Iterable[str],
        password: bytes | str,
        output: Optional[Path | str] = None,
        algorithm: str = DEFAULT_ALGORITHM,
        kdf_params: KdfParams = KdfParams(),
    ) -> RunReport:
        source = Path(source)
        names = list(fields)
        if not names:
            raise UsageError("no fields given to encrypt")
        suite = get_suite(algorithm)
        target = Path(output) if output else default_output_path(source, decrypting=False)

        def body() -> RunReport:
            doc = self._read(source)
            if doc.manifest is not None:
                raise UsageError(f"{source} is already encrypted")
            _check_fields(doc, names)
            report = RunReport(source=str(source), file_format=doc.file_format, fields=names)
            tasks = self._collect(doc, names, report)

            self._enter(TranscoderState.PROCESSING)
            with RunContext.for_encryption(password, suite, kdf_params) as ctx:
                encode = self._encoder(doc.file_format, ctx)
                results = self._map(encode, tasks)
                manifest = FileManifest(
                    algorithm=suite.name,
                    kdf=ctx.kdf_params,
                    salt=ctx.salt,
                    key_check=ctx.key_check(),
                    fields=tuple(names),
                )
            out = self._assemble(doc, tasks, results)
            out.manifest = manifest
            report.fields_processed = len(tasks)

            self._enter(TranscoderState.WRITING)
            report.output = str(atomic_write(target, serialize(out)))
            logger.info("encrypted %d field value(s) into %s", len(tasks), target)
            return report

        return self._run(body)

    def plan_encryption(self, source: Path | str, fields: Iterable[str]) -> RunReport:
        """Dry run: parse and select, but derive no key and write nothing."""
        source = Path(source)
        names = list(fields)
        if not names:
            raise UsageError("no fields given to encrypt")

        def body() -> RunReport:
            doc = self._read(source)
            if doc.manifest is not None:
                raise UsageError(f"{source} is already encrypted")
            _check_fields(doc, names)
            report = RunReport(
                source=str(source), file_format=doc.file_format, fields=names, dry_run=True
            )
            self._enter(TranscoderState.PROCESSING)
            report.fields_processed = len(self._collect(doc, names, report))
            return report

        return self._run(body)

    def _encoder(self, file_format: FileFormat, ctx: RunContext) -> Callable[[Task], Any]:
        suite = ctx.suite
        key = ctx.key

        def encode(task: Task) -> Any:
            _, name, value = task
            if file_format is FileFormat.CSV:
                plaintext = value.encode("utf-8")
            else:
                plaintext = json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
            nonce, ciphertext, tag = suite.encrypt(key, plaintext, name.encode("utf-8"))
            env = codec.FieldEnvelope(suite.name, nonce, ciphertext, tag)
            if file_format is FileFormat.CSV:
                return codec.encode_text(env)
            return codec.encode_object(env)

        return encode

    # ------------------------------------------------------------------
    # Decryption
    # ------------------------------------------------------------------

    def decrypt_file(
        self,
        source: Path | str,
        password: bytes | str,
        output: Optional[Path | str] = None,
    ) -> RunReport:
        source = Path(source)
        target = Path(output) if output else default_output_path(source, decrypting=True)

        def body() -> RunReport:
            doc = self._read(source)
            if doc.manifest is None:
                raise ManifestError(f"{source} has no fieldcrypt manifest; is it encrypted?")
            names = list(doc.manifest.fields)
            report = RunReport(source=str(source), file_format=doc.file_format, fields=names)
            report.records = len(doc.records)
            tasks = self._collect_envelopes(doc, names)

            self._enter(TranscoderState.PROCESSING)
            with RunContext.for_manifest(password, doc.manifest) as ctx:
                results = self._map(self._decoder(doc.file_format, ctx), tasks)

            ok_tasks, ok_values = [], []
            for task, (value, error) in zip(tasks, results):
                if error is None:
                    ok_tasks.append(task)
                    ok_values.append(value)
                    continue
                failure = FieldFailure(task[0], task[1], error)
                if self.strict:
                    raise error
                logger.warning("could not decrypt %s", failure)
                report.failures.append(failure)

            out = self._assemble(doc, ok_tasks, ok_values)
            out.manifest = None
            report.fields_processed = len(ok_tasks)

            self._enter(TranscoderState.WRITING)
            report.output = str(atomic_write(target, serialize(out)))
            logger.info(
                "decrypted %d field value(s) into %s (%d failure(s))",
                len(ok_tasks),
                target,
                len(report.failures),
            )
            return report

        return self._run(body)

    def _decoder(self, file_format: FileFormat, ctx: RunContext) -> Callable[[Task], Tuple[Any, Optional[FieldcryptError]]]:
        key = ctx.key

        def decode(task: Task) -> Tuple[Any, Optional[FieldcryptError]]:
            _, name, value = task
            try:
                if file_format is FileFormat.CSV:
                    env = codec.decode_text(value)
                else:
                    env = codec.decode_object(value)
                suite = get_suite(env.algorithm)
                plaintext = suite.decrypt(key, env.nonce, env.ciphertext, env.tag, name.encode("utf-8"))
                return _restore(file_format, plaintext), None
            except (AuthenticationFailure, MalformedEnvelopeError) as e:
                return None, e

        return decode

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def inspect_file(self, source: Path | str, password: Optional[bytes | str] = None) -> ValidationReport:
        """Parse the file and check its manifest and envelopes without writing.

        With a password, the key confirmation value is checked and every
        envelope is test-decrypted.
        """
        source = Path(source)

        def body() -> ValidationReport:
            doc = self._read(source)
            report = ValidationReport(
                source=str(source),
                file_format=doc.file_format,
                records=len(doc.records),
                encrypted=doc.manifest is not None,
                manifest=doc.manifest,
            )
            if doc.manifest is None:
                return report

            self._enter(TranscoderState.PROCESSING)
            tasks = self._collect_envelopes(doc, doc.manifest.fields)
            report.envelopes = len(tasks)
            if password is None:
                decode = codec.decode_text if doc.file_format is FileFormat.CSV else codec.decode_object
                for index, name, value in tasks:
                    try:
                        decode(value)
                    except MalformedEnvelopeError as e:
                        report.problems.append(f"record {index}, field {name!r}: {e}")
                return report

            try:
                ctx = RunContext.for_manifest(password, doc.manifest)
            except AuthenticationFailure:
                report.password_ok = False
                return report
            report.password_ok = True
            with ctx:
                results = self._map(self._decoder(doc.file_format, ctx), tasks)
            for (index, name, _), (_, error) in zip(tasks, results):
                if error is not None:
                    report.problems.append(f"record {index}, field {name!r}: {error}")
            return report

        return self._run(body)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _collect(self, doc: Document, names: Sequence[str], report: RunReport) -> List[Task]:
        none_is_absent = doc.file_format is FileFormat.CSV
        tasks: List[Task] = []
        for index, record in enumerate(doc.records):
            selection = select_fields(record, names, index, none_is_absent=none_is_absent)
            for error in selection.not_found():
                if error.field not in report.missing_fields:
                    # one warning per field per run
                    logger.warning("%s; skipping it wherever it is absent", error)
                    report.missing_fields.append(error.field)
            tasks.extend((index, name, value) for name, value in selection.values.items())
        report.records = len(doc.records)
        return tasks

    def _collect_envelopes(self, doc: Document, names: Sequence[str]) -> List[Task]:
        """Values to decrypt: every present value of an encrypted field.

        Absent fields were absent when the file was encrypted too. An empty
        CSV cell never holds an envelope, so it is treated as absent.
        """
        none_is_absent = doc.file_format is FileFormat.CSV
        tasks: List[Task] = []
        for index, record in enumerate(doc.records):
            selection = select_fields(record, names, index, none_is_absent=none_is_absent)
            for name, value in selection.values.items():
                if none_is_absent and value == "":
                    continue
                tasks.append((index, name, value))
        return tasks

    def _assemble(self, doc: Document, tasks: Sequence[Task], values: Sequence[Any]) -> Document:
        replacements: Dict[int, Dict[str, Any]] = {}
        for (index, name, _), value in zip(tasks, values):
            replacements.setdefault(index, {})[name] = value
        records = [
            replace_fields(record, replacements[index]) if index in replacements else record
            for index, record in enumerate(doc.records)
        ]
        return Document(
            doc.file_format,
            records,
            headers=list(doc.headers),
            single=doc.single,
            manifest=doc.manifest,
        )


def _check_fields(doc: Document, names: Sequence[str]) -> None:
    # CSV columns are flat, so only JSON paths can nest inside each other
    if doc.file_format is not FileFormat.JSON:
        return
    overlaps = overlapping_fields(names)
    if overlaps:
        outer, inner = overlaps[0]
        raise UsageError(f"field {inner!r} lies inside field {outer!r}; select only one of them")


def _restore(file_format: FileFormat, plaintext: bytes) -> Any:
    try:
        text = plaintext.decode("utf-8")
        if file_format is FileFormat.CSV:
            return text
        return json.loads(text)
    except ValueError as e:
        raise MalformedEnvelopeError(f"decrypted value is not valid: {e}") from e
