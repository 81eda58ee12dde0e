import argparse
import sys

from .config import load_settings
from .errors import ConfigError
from .proxysig import sign_query


def _serve(args) -> int:
    import uvicorn
    from .server import create_app

    settings = load_settings()
    uvicorn.run(
        create_app(settings),
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


def _sign(args) -> int:
    # handy for curl-testing a deployed relay
    secret = args.secret or load_settings().proxy_secret
    if not secret:
        print("no secret: pass --secret or set PROXY_SECRET",
              file=sys.stderr)
        return 2
    pairs = []
    for item in args.params:
        k, sep, v = item.partition("=")
        if not sep:
            print(f"expected key=value, got {item!r}", file=sys.stderr)
            return 2
        pairs.append((k, v))
    print(sign_query(pairs, secret))
    return 0


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(
        prog="python -m ticketrelay",
        description="Signed app-proxy ticket relay"
    )
    sub = ap.add_subparsers(dest="cmd")

    serve = sub.add_parser("serve", help="run the HTTP server (default)")
    serve.add_argument("--host", help="listen address (default: HOST)")
    serve.add_argument("--port", type=int,
                       help="listen port (default: PORT)")

    sign = sub.add_parser(
        "sign", help="print a signed query string for key=value params"
    )
    sign.add_argument("params", nargs="*", help="key=value pairs")
    sign.add_argument("--secret",
                      help="shared secret (default: PROXY_SECRET)")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "sign":
            return _sign(args)
        if args.cmd is None:
            args.host, args.port = None, None
        return _serve(args)
    except ConfigError as e:
        print(f"!! config error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
