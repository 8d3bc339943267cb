#!/usr/bin/env python3
"""
otp_cli.py - Command-line wrapper around otp_engine.

Subcommands:
- init   : create a secret, save it to a file, print otpauth URIs
- totp   : print the current TOTP code (or keep refreshing with --watch)
- hotp   : print the HOTP code for a counter
- uri    : print otpauth URIs (and an ASCII QR code with --qr)
- verify : check a TOTP/HOTP code

Examples:
    otp-engine init --account alice@example.com --issuer MyService --qr
    otp-engine totp --digits 8 --period 60
    otp-engine hotp --counter 42
    otp-engine verify totp --code 123456 --window 1
    otp-engine verify hotp --code 123456 --counter 7 --look-ahead 3

The secret is read from --secret (Base32), --secret-hex or --secret-file
(default: otp_secret.txt). Defaults honour OTP_DIGITS, OTP_PERIOD, OTP_WINDOW,
OTP_LOOKAHEAD, OTP_ALGORITHM and OTP_ISSUER.

Exit status: 0 ok / valid code, 1 invalid code, 2 bad input.
"""

import argparse
import logging
import os
import shutil
import sys
import time
from typing import List, Optional

from otp_engine.config import SECRET_FILE, OtpSettings
from otp_engine.errors import OtpError
from otp_engine.otp_core import hotp, totp, verify_hotp, verify_totp
from otp_engine.provisioning import build_uri, qr_ascii
from otp_engine.secret_codec import decode_base32, decode_hex, encode_base32, generate_secret

logger = logging.getLogger("otp_engine.cli")

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_USAGE = 2


# --- Secret file I/O -------------------------------------------------------
def save_secret(secret_b32: str, path: str = SECRET_FILE) -> None:
    """
    Save a Base32 secret to `path` (one line).

    - An existing file is backed up to path + ".bak" first.
    - Permissions are set to 0600 where the filesystem allows it.
    """
    if os.path.exists(path):
        logger.info("%s exists, keeping a backup at %s.bak", path, path)
        shutil.copy2(path, path + ".bak")
    with open(path, "w", encoding="utf-8") as f:
        f.write(secret_b32 + "\n")
    try:
        os.chmod(path, 0o600)
    except OSError:
        logger.warning("unable to chmod %s to 600", path)


def load_secret(path: str = SECRET_FILE) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read().strip()


def _resolve_secret(args) -> bytes:
    if args.secret:
        return decode_base32(args.secret)
    if args.secret_hex:
        return decode_hex(args.secret_hex)
    return decode_base32(load_secret(args.secret_file))


# --- CLI command handlers --------------------------------------------------
def cmd_init(args) -> int:
    secret = generate_secret()
    totp_uri = build_uri(
        secret, args.account, issuer=args.issuer, kind="totp",
        digits=args.digits, period=args.period, algorithm=args.algorithm,
    )
    hotp_uri = build_uri(
        secret, args.account, issuer=args.issuer, kind="hotp",
        digits=args.digits, algorithm=args.algorithm,
    )
    save_secret(encode_base32(secret), args.secret_file)
    print(f"[*] Secret saved to {args.secret_file}")
    print("[*] otpauth URIs (import into authenticator apps):")
    print("    TOTP:", totp_uri)
    print("    HOTP:", hotp_uri)
    if args.qr:
        print(qr_ascii(totp_uri))
    return EXIT_OK


def cmd_totp(args) -> int:
    secret = _resolve_secret(args)
    if not args.watch:
        code, remaining = totp(secret, args.time, args.period, args.digits, args.algorithm)
        print(f"TOTP: {code}  (valid ~{remaining:2d}s)")
        return EXIT_OK

    print("Press Ctrl+C to quit. Generating TOTP in real time...\n")
    last_code = None
    try:
        while True:
            code, remaining = totp(secret, None, args.period, args.digits, args.algorithm)
            if code != last_code:
                print(f"TOTP: {code}  (valid ~{remaining:2d}s)")
                last_code = code
            else:
                print(f".. {remaining:2d}s left", end="\r", flush=True)
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nBye.")
    return EXIT_OK


def cmd_hotp(args) -> int:
    secret = _resolve_secret(args)
    code = hotp(secret, args.counter, args.digits, args.algorithm)
    print(f"HOTP(counter={args.counter}): {code}")
    return EXIT_OK


def cmd_uri(args) -> int:
    secret = _resolve_secret(args)
    totp_uri = build_uri(
        secret, args.account, issuer=args.issuer, kind="totp",
        digits=args.digits, period=args.period, algorithm=args.algorithm,
    )
    hotp_uri = build_uri(
        secret, args.account, issuer=args.issuer, kind="hotp",
        digits=args.digits, counter=args.counter, algorithm=args.algorithm,
    )
    print("TOTP URI:")
    print(totp_uri)
    print("\nHOTP URI:")
    print(hotp_uri)
    if args.qr:
        print()
        print(qr_ascii(totp_uri))
    return EXIT_OK


def cmd_verify_totp(args) -> int:
    secret = _resolve_secret(args)
    ok = verify_totp(
        secret,
        args.code,
        unix_time=args.time,
        step_seconds=args.period,
        window_steps=args.window,
        digits=args.digits,
        algorithm=args.algorithm,
    )
    if ok:
        print("[+] TOTP code is VALID")
        return EXIT_OK
    print("[-] TOTP code is INVALID")
    return EXIT_INVALID


def cmd_verify_hotp(args) -> int:
    secret = _resolve_secret(args)
    ok, matched = verify_hotp(
        secret,
        args.code,
        args.counter,
        lookahead=args.look_ahead,
        digits=args.digits,
        algorithm=args.algorithm,
    )
    if ok:
        print(f"[+] HOTP code is VALID (matched counter = {matched}, next counter = {matched + 1})")
        return EXIT_OK
    print("[-] HOTP code is INVALID")
    return EXIT_INVALID


# --- Argparse builder ------------------------------------------------------
def build_parser(settings: Optional[OtpSettings] = None) -> argparse.ArgumentParser:
    if settings is None:
        settings = OtpSettings.from_env()

    # options shared by every subcommand that reads an existing secret
    source = argparse.ArgumentParser(add_help=False)
    group = source.add_mutually_exclusive_group()
    group.add_argument("--secret", help="Base32 secret")
    group.add_argument("--secret-hex", help="Hex secret")
    source.add_argument("--secret-file", default=SECRET_FILE,
                        help=f"File holding the Base32 secret (default: {SECRET_FILE})")

    code_opts = argparse.ArgumentParser(add_help=False)
    code_opts.add_argument("--digits", type=int, default=settings.digits, help="Number of OTP digits")
    code_opts.add_argument("--algorithm", default=settings.algorithm, help="SHA1, SHA256 or SHA512")

    p = argparse.ArgumentParser(prog="otp-engine", description="TOTP/HOTP generator and verifier (RFC 4226 / RFC 6238)")
    p.add_argument("--verbose", action="store_true", help="Debug logging to stderr")
    sub = p.add_subparsers(dest="cmd")

    # init
    pi = sub.add_parser("init", parents=[code_opts], help="Generate a secret and print otpauth URIs")
    pi.add_argument("--secret-file", default=SECRET_FILE, help="Where to save the Base32 secret")
    pi.add_argument("--account", default="user@example", help="Account label for otpauth URI")
    pi.add_argument("--issuer", default=settings.issuer, help="Issuer label for otpauth URI")
    pi.add_argument("--period", type=int, default=settings.period, help="TOTP time step (seconds)")
    pi.add_argument("--qr", action="store_true", help="Also print the TOTP URI as an ASCII QR code")
    pi.set_defaults(func=cmd_init)

    # totp
    pt = sub.add_parser("totp", parents=[source, code_opts], help="Show the TOTP code")
    pt.add_argument("--period", type=int, default=settings.period, help="TOTP time step (seconds)")
    pt.add_argument("--time", type=int, help="Unix time to compute the code for (default: now)")
    pt.add_argument("--watch", action="store_true", help="Refresh every second until Ctrl+C")
    pt.set_defaults(func=cmd_totp)

    # hotp
    ph = sub.add_parser("hotp", parents=[source, code_opts], help="Generate HOTP code for a specific counter")
    ph.add_argument("--counter", type=int, required=True)
    ph.set_defaults(func=cmd_hotp)

    # uri
    pu = sub.add_parser("uri", parents=[source, code_opts], help="Print otpauth URIs for TOTP/HOTP")
    pu.add_argument("--account", default="user@example")
    pu.add_argument("--issuer", default=settings.issuer)
    pu.add_argument("--period", type=int, default=settings.period)
    pu.add_argument("--counter", type=int, default=0, help="Initial HOTP counter")
    pu.add_argument("--qr", action="store_true", help="Also print the TOTP URI as an ASCII QR code")
    pu.set_defaults(func=cmd_uri)

    # verify
    pv = sub.add_parser("verify", help="Verify an OTP code (TOTP or HOTP)")
    sub_v = pv.add_subparsers(dest="verify_type")

    pvt = sub_v.add_parser("totp", parents=[source, code_opts], help="Verify a TOTP code")
    pvt.add_argument("--code", required=True, help="OTP code to verify")
    pvt.add_argument("--period", type=int, default=settings.period)
    pvt.add_argument("--window", type=int, default=settings.window, help="Allowed +/- step window")
    pvt.add_argument("--time", type=int, help="Unix time to verify at (default: now)")
    pvt.set_defaults(func=cmd_verify_totp)

    pvh = sub_v.add_parser("hotp", parents=[source, code_opts], help="Verify a HOTP code")
    pvh.add_argument("--code", required=True, help="OTP code to verify")
    pvh.add_argument("--counter", type=int, required=True, help="Current HOTP counter")
    pvh.add_argument("--look-ahead", type=int, default=settings.lookahead, help="Allowed counter look-ahead")
    pvh.set_defaults(func=cmd_verify_hotp)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    try:
        parser = build_parser()
    except ValueError as e:
        print(f"error: invalid OTP_* environment setting: {e}", file=sys.stderr)
        return EXIT_USAGE
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    if not hasattr(args, "func"):
        parser.print_help()
        return EXIT_USAGE

    try:
        return args.func(args)
    except OtpError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_USAGE
    except FileNotFoundError as e:
        print(f"error: secret file not found: {e.filename} (run 'otp-engine init' first)", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
