import json
import os
import sys
import tempfile

from fastapi.testclient import TestClient

from ratekeeper.core.config import Settings
from ratekeeper.main import create_app

"""Smoke script: live fetch against the real Frankfurter API.

Creates a temp DB, triggers POST /rates/fetch twice (the second call inside
the same minute should add no rows), then prints /rates/latest and the 24h
average for USD/INR.

NOTE: This is a lightweight diagnostic and not a formal test; it needs network.
"""


def run():
    with tempfile.TemporaryDirectory() as d:
        settings = Settings(
            db_path=os.path.join(d, "smoke.sqlite3"),
            api_key="smoke",
            scheduler_enabled=False,
        )
        app = create_app(settings_override=settings)
        client = TestClient(app, headers={"X-API-Key": "smoke"})

        first = client.post("/rates/fetch")
        second = client.post("/rates/fetch")
        out = {
            "fetch": [first.status_code, second.status_code],
            "rows": app.state.store.count_observations(),
            "latest": client.get("/rates/latest", params={"base": "USD"}).json(),
            "avg_usd_inr_24h": client.get(
                "/rates/average", params={"base": "USD", "target": "INR", "period": "24h"}
            ).json(),
        }
        print(json.dumps(out, indent=2))


if __name__ == "__main__":
    sys.path.append(os.getcwd())
    run()
