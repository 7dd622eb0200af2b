from __future__ import annotations

import signal
import sys

from storeadmin import create_app
from storeadmin.database import close_pool


def main() -> None:
    flask_app = create_app()

    def shutdown(signum, frame) -> None:
        flask_app.logger.info("Received signal %s, shutting down", signum)
        sys.exit(0)

    signal.signal(signal.SIGTERM, shutdown)

    debug_enabled = flask_app.config.get("APP_ENV") == "development"
    if debug_enabled:
        # show what routes are actually mounted
        print("\n=== URL MAP ===")
        for r in sorted(flask_app.url_map.iter_rules(), key=lambda x: x.rule):
            print(r)
        print("===============\n")

    try:
        flask_app.run(host="0.0.0.0", port=flask_app.config["PORT"], debug=debug_enabled)
    except Exception:
        flask_app.logger.exception("Server stopped after an unhandled error")
        raise
    finally:
        with flask_app.app_context():
            close_pool()


if __name__ == "__main__":
    main()
