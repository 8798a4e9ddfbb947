"""Command line interface for fieldcrypt.

Usage:
  fieldcrypt encrypt --file data.csv --fields ssn,pan --password <pw> [--algorithm aes-256-gcm] [--output out.csv]
  fieldcrypt decrypt --file data.enc.csv --password <pw> [--output data.csv] [--strict]
  fieldcrypt upload --file data.enc.csv --sftp-host <host> [--sftp-port 22] [--sftp-user u] [--sftp-key k] [--remote-dir /uploads] [--delete-after]
  fieldcrypt validate [--file data.enc.csv] [--password <pw>]

Global options: --config <file.json> supplies defaults below the FIELDCRYPT_*
environment variables. A file path of "-" reads standard input or writes
standard output; the run summary then goes to stderr.

Exit codes: 0 ok, 1 unexpected error, 2 usage, 3 cryptographic failure,
4 I/O failure, 5 unsupported format, 6 no upload transport.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Mapping, Optional, Sequence

from fieldcrypt import __version__
from fieldcrypt.core.exceptions import (
    EXIT_CRYPTO,
    EXIT_UNEXPECTED,
    FieldcryptError,
    TransportUnavailableError,
    UsageError,
)
from fieldcrypt.core.selector import parse_field_list
from fieldcrypt.core.transcoder import FileTranscoder
from fieldcrypt.core.storage import is_stdio
from fieldcrypt.core.upload import (
    UploadTarget,
    UploadTransport,
    read_upload_payload,
    upload,
    upload_and_remove,
)
from fieldcrypt.security.crypto import CIPHER_SUITES, get_suite
from fieldcrypt.security.kdf import KDF_NAMES

from .context import CliSettings, build_kdf_params, load_config_file, load_settings, resolve_password
from .logging_config import configure_logging

logger = logging.getLogger(__name__)


def build_parser(settings: CliSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fieldcrypt",
        description="Client-side encryption of CSV/JSON fields",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr")
    parser.add_argument("--config", default=None, metavar="FILE", help="JSON file of default settings")
    sub = parser.add_subparsers(dest="command", metavar="command")
    sub.required = True

    enc = sub.add_parser("encrypt", help="Encrypt sensitive fields in a CSV or JSON file")
    enc.add_argument("-f", "--file", required=True, help="Input file path (CSV or JSON), - for stdin")
    enc.add_argument("--fields", required=True, help="Comma-separated field names to encrypt")
    enc.add_argument("-p", "--password", default=None, help="Encryption password")
    enc.add_argument(
        "-a",
        "--algorithm",
        default=settings.algorithm,
        choices=sorted(CIPHER_SUITES),
        help=f"Encryption algorithm (default: {settings.algorithm})",
    )
    enc.add_argument(
        "--kdf",
        default=settings.kdf.name,
        choices=KDF_NAMES,
        help=f"Password key derivation function (default: {settings.kdf.name})",
    )
    enc.add_argument("-o", "--output", default=None, help="Output file path, - for stdout (default: <name>.enc.<ext>)")
    enc.add_argument("--workers", type=int, default=settings.workers, help="Parallel field workers")
    enc.add_argument("--dry-run", action="store_true", help="Report what would be encrypted, write nothing")

    dec = sub.add_parser("decrypt", help="Decrypt an encrypted file")
    dec.add_argument("-f", "--file", required=True, help="Encrypted file path, - for stdin")
    dec.add_argument("-p", "--password", default=None, help="Decryption password")
    dec.add_argument("-o", "--output", default=None, help="Output file path, - for stdout (default: <name>.dec.<ext>)")
    dec.add_argument("--strict", action="store_true", help="Abort on the first field that fails to decrypt")
    dec.add_argument("--workers", type=int, default=settings.workers, help="Parallel field workers")

    up = sub.add_parser("upload", help="Upload an encrypted file to an SFTP server")
    up.add_argument("-f", "--file", required=True, help="Encrypted file to upload")
    up.add_argument("--sftp-host", default=settings.sftp_host, required=settings.sftp_host is None,
                    help="SFTP server hostname")
    up.add_argument("--sftp-port", type=int, default=settings.sftp_port, help="SFTP server port")
    up.add_argument("--sftp-user", default=settings.sftp_user, help="SFTP username")
    up.add_argument("--sftp-key", default=settings.sftp_key, help="SFTP private key path")
    up.add_argument("--remote-dir", default=settings.remote_dir, help="Remote directory path")
    up.add_argument("--dry-run", action="store_true", help="Check the file and show the plan only")
    up.add_argument("--delete-after", action="store_true", help="Remove the local file after a verified upload")

    val = sub.add_parser("validate", help="Validate the encryption setup or an encrypted file")
    val.add_argument("-f", "--file", default=None, help="File to check (default: check configuration only)")
    val.add_argument("-p", "--password", default=None, help="Also confirm this password against the file")

    return parser


def _summary_stream(args, out):
    # data on stdout leaves stderr for the summary
    if is_stdio(args.output) or (args.output is None and is_stdio(args.file)):
        return sys.stderr
    return out


def _cmd_encrypt(args, settings: CliSettings, out) -> int:
    fields = parse_field_list(args.fields)
    if not fields:
        raise UsageError("--fields must name at least one field")
    transcoder = FileTranscoder(workers=args.workers)
    if args.dry_run:
        report = transcoder.plan_encryption(args.file, fields)
        print(report.summary(), file=out)
        return 0

    kdf = settings.kdf
    if args.kdf != kdf.name:
        kdf = build_kdf_params(
            args.kdf,
            iterations=kdf.iterations,
            time_cost=kdf.time_cost,
            memory_cost=kdf.memory_cost,
            parallelism=kdf.parallelism,
        )
    password = resolve_password(args.password, settings, confirm=True)
    report = transcoder.encrypt_file(
        args.file,
        fields,
        password,
        output=args.output,
        algorithm=args.algorithm,
        kdf_params=kdf,
    )
    print(report.summary(), file=_summary_stream(args, out))
    return 0


def _cmd_decrypt(args, settings: CliSettings, out) -> int:
    password = resolve_password(args.password, settings)
    transcoder = FileTranscoder(workers=args.workers, strict=args.strict)
    report = transcoder.decrypt_file(args.file, password, output=args.output)
    print(report.summary(), file=_summary_stream(args, out))
    return 0 if report.ok else EXIT_CRYPTO


def _cmd_upload(args, settings: CliSettings, out, transport: Optional[UploadTransport]) -> int:
    if is_stdio(args.file):
        raise UsageError("upload needs a file path, not standard input")
    target = UploadTarget(
        host=args.sftp_host,
        port=args.sftp_port,
        user=args.sftp_user,
        key_path=args.sftp_key,
        remote_dir=args.remote_dir,
    )
    payload = read_upload_payload(args.file)
    remote_path = target.remote_path_for(payload.name)
    if args.dry_run:
        print(f"would upload {payload.name} ({payload.size} bytes, sha256 {payload.sha256})", file=out)
        print(f"to {target} as {remote_path}", file=out)
        return 0
    if transport is None:
        raise TransportUnavailableError(
            f"no SFTP transport configured; {payload.name} is ready for {target}"
        )
    if args.delete_after:
        remote_path = upload_and_remove(payload, target, transport)
    else:
        remote_path = upload(payload, target, transport)
    print(f"uploaded {payload.name} to {remote_path} (sha256 {payload.sha256})", file=out)
    if args.delete_after:
        print(f"removed local file {payload.path}", file=out)
    return 0


def _cmd_validate(args, settings: CliSettings, out) -> int:
    transcoder = FileTranscoder(workers=settings.workers)
    if args.file is None:
        # self-test of the configured cipher suite with a throwaway key
        suite = get_suite(settings.algorithm)
        key = os.urandom(suite.key_size)
        nonce, ciphertext, tag = suite.encrypt(key, b"fieldcrypt-self-test")
        suite.decrypt(key, nonce, ciphertext, tag)
        print(
            f"configuration ok: algorithm={suite.name}, kdf={settings.kdf.name}, workers={settings.workers}",
            file=out,
        )
        return 0

    password = args.password if args.password is not None else settings.password
    report = transcoder.inspect_file(args.file, password)
    print(report.summary(), file=out)
    return 0 if report.ok else EXIT_CRYPTO


def main(
    argv: Optional[Sequence[str]] = None,
    transport: Optional[UploadTransport] = None,
    environ: Optional[Mapping[str, str]] = None,
    out=None,
) -> int:
    """Run the CLI and return its exit code.

    ``transport`` is the SFTP implementation used by ``upload``; embedding
    applications pass their own.
    """
    out = out or sys.stdout
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    known, _ = pre.parse_known_args(argv)
    try:
        config = load_config_file(known.config) if known.config else None
        settings = load_settings(environ, config)
    except FieldcryptError as e:
        print(f"error: {e}", file=sys.stderr)
        return e.exit_code

    args = build_parser(settings).parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else settings.log_level)

    try:
        if args.command == "encrypt":
            return _cmd_encrypt(args, settings, out)
        if args.command == "decrypt":
            return _cmd_decrypt(args, settings, out)
        if args.command == "upload":
            return _cmd_upload(args, settings, out, transport)
        return _cmd_validate(args, settings, out)
    except FieldcryptError as e:
        logger.debug("%s failed", args.command, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return e.exit_code
    except KeyboardInterrupt:
        print("interrupted", file=sys.stderr)
        return EXIT_UNEXPECTED


if __name__ == "__main__":
    sys.exit(main())
