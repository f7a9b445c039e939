from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import httpx
from pydantic import ValidationError

from .config import config_from_env, load_config, parse_config


@dataclass(frozen=True)
class SmokeCase:
    operation: str
    params: Mapping[str, float]
    expected: float


SMOKE_CASES = (
    SmokeCase("add", {"num1": 5, "num2": 3}, 8),
    SmokeCase("subtract", {"num1": 10, "num2": 4}, 6),
    SmokeCase("multiply", {"num1": 7, "num2": 6}, 42),
    SmokeCase("divide", {"num1": 20, "num2": 5}, 4),
    SmokeCase("power", {"num1": 2, "num2": 3}, 8),
    SmokeCase("sqrt", {"num1": 25}, 5),
    SmokeCase("mod", {"num1": 17, "num2": 5}, 2),
)


def _run_validate(path: str) -> int:
    try:
        parse_config(load_config(path))
    except ValidationError as exc:
        print("Config validation failed:")
        print(exc)
        return 2
    except (OSError, ValueError) as exc:
        print(f"Config could not be loaded: {exc}")
        return 2
    print("Config OK")
    return 0


def _run_serve(config_path: str | None, host: str | None, port: int | None) -> int:
    import uvicorn

    from .server import create_app

    cfg = parse_config(load_config(config_path)) if config_path else config_from_env()
    app = create_app(cfg)
    uvicorn.run(app, host=host or cfg.host, port=port or cfg.port)
    return 0


def _check(label: str, ok: bool, detail: Any = None) -> bool:
    mark = "PASS" if ok else "FAIL"
    suffix = f" ({detail})" if detail is not None else ""
    print(f"[{mark}] {label}{suffix}")
    return ok


def run_smoke(client: httpx.Client) -> bool:
    """Exercise every operation plus history read/clear against a live service."""
    ok = True
    for case in SMOKE_CASES:
        try:
            response = client.get(f"/{case.operation}", params=dict(case.params))
            result = response.json().get("result")
            passed = response.status_code == 200 and result == case.expected
            ok &= _check(f"{case.operation} {dict(case.params)}", passed, f"result={result}")
        except (httpx.HTTPError, ValueError) as exc:
            ok &= _check(case.operation, False, exc)

    try:
        history = client.get("/history")
        records = history.json().get("history")
        ok &= _check("history read", history.status_code == 200 and isinstance(records, list), f"{len(records or [])} records")

        cleared = client.delete("/history")
        ok &= _check("history clear", cleared.json().get("message") == "History cleared successfully")

        after = client.get("/history")
        ok &= _check("history empty after clear", after.json().get("history") == [])
    except (httpx.HTTPError, ValueError) as exc:
        ok &= _check("history", False, exc)
    return ok


def _run_smoke(base_url: str, timeout: float) -> int:
    with httpx.Client(base_url=base_url, timeout=timeout) as client:
        ok = run_smoke(client)
    print("All smoke checks passed" if ok else "Smoke checks FAILED")
    return 0 if ok else 1


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="calcsvc", description="Calculator microservice")
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the HTTP service")
    serve.add_argument("--config", default=None, help="Path to config file (.json/.yaml)")
    serve.add_argument("--host", default=None, help="Override bind host")
    serve.add_argument("--port", type=int, default=None, help="Override bind port")

    validate = sub.add_parser("validate", help="Validate a config file")
    validate.add_argument("path", help="Path to config file (.json/.yaml)")

    smoke = sub.add_parser("smoke", help="Run smoke checks against a running service")
    smoke.add_argument("--base-url", default="http://localhost:3002", help="Service base URL")
    smoke.add_argument("--timeout", type=float, default=5.0, help="Request timeout in seconds")

    args = parser.parse_args(list(argv) if argv is not None else None)
    if args.command == "serve":
        return _run_serve(args.config, args.host, args.port)
    if args.command == "validate":
        return _run_validate(args.path)
    if args.command == "smoke":
        return _run_smoke(args.base_url, args.timeout)
    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
