"""Replay an Event Grid delivery into a local secret cache.

Usage (from fixture file):
  python dev/replay_event.py dev/fixtures/secret_new_version.json
  python dev/replay_event.py dev/fixtures/subscription_validation.json

Usage (built-in payloads):
  python dev/replay_event.py --validate
  python dev/replay_event.py --secret db-password

The script will:
- Infer the Aeg-Event-Type header from the first event if not provided
- Send the delivery to http://localhost:8080/api/updates
"""

import argparse
import json
import pathlib
import sys
import urllib.error
import urllib.request
import uuid
from datetime import datetime, timezone

SUBSCRIPTION_VALIDATION_EVENT = "Microsoft.EventGrid.SubscriptionValidationEvent"
SECRET_NEW_VERSION_CREATED = "Microsoft.KeyVault.SecretNewVersionCreated"
VAULT_TOPIC = (
    "/subscriptions/local/resourceGroups/dev/"
    "providers/Microsoft.KeyVault/vaults/{vault_name}"
)


def infer_header_kind(payload) -> str:
    """Infer the Aeg-Event-Type header from the first event of a delivery."""
    first = payload[0] if isinstance(payload, list) and payload else payload
    if isinstance(first, dict) and first.get("eventType") == SUBSCRIPTION_VALIDATION_EVENT:
        return "SubscriptionValidation"
    return "Notification"


def build_validation_payload(code: str) -> list[dict]:
    return [
        {
            "id": str(uuid.uuid4()),
            "topic": VAULT_TOPIC.format(vault_name="dev"),
            "subject": "",
            "eventType": SUBSCRIPTION_VALIDATION_EVENT,
            "eventTime": datetime.now(timezone.utc).isoformat(),
            "data": {"validationCode": code},
            "dataVersion": "1",
        }
    ]


def build_secret_payload(name: str, vault_name: str) -> list[dict]:
    version = uuid.uuid4().hex
    return [
        {
            "id": str(uuid.uuid4()),
            "topic": VAULT_TOPIC.format(vault_name=vault_name),
            "subject": name,
            "eventType": SECRET_NEW_VERSION_CREATED,
            "eventTime": datetime.now(timezone.utc).isoformat(),
            "data": {
                "Id": f"https://{vault_name}.vault.azure.net/secrets/{name}/{version}",
                "VaultName": vault_name,
                "ObjectType": "Secret",
                "ObjectName": name,
                "Version": version,
            },
            "dataVersion": "1",
        }
    ]


def main():
    parser = argparse.ArgumentParser(description="Replay an Event Grid delivery to a local cache")
    parser.add_argument(
        "fixture_path",
        nargs="?",
        help="Path to delivery JSON file (not required with --validate or --secret)",
    )
    parser.add_argument(
        "--validate",
        action="store_true",
        help="Send a subscription validation handshake",
    )
    parser.add_argument(
        "--secret",
        metavar="NAME",
        help="Send a SecretNewVersionCreated notification for NAME",
    )
    parser.add_argument(
        "--vault-name",
        default="dev",
        help="Vault name used in built-in notification payloads (default: dev)",
    )
    parser.add_argument(
        "--header",
        "-H",
        help="Aeg-Event-Type header value (inferred from the payload if not provided)",
    )
    parser.add_argument(
        "--url",
        "-u",
        default="http://localhost:8080/api/updates",
        help="Webhook endpoint URL (default: http://localhost:8080/api/updates)",
    )

    args = parser.parse_args()

    if args.validate:
        payload = build_validation_payload(f"replay-{uuid.uuid4()}")
    elif args.secret:
        payload = build_secret_payload(args.secret, args.vault_name)
    elif args.fixture_path:
        path = pathlib.Path(args.fixture_path)
        if not path.exists():
            print(f"Error: File not found: {path}")
            return 1
        payload = json.loads(path.read_text(encoding="utf-8"))
    else:
        parser.error("fixture_path is required when not using --validate or --secret")

    header_kind = args.header or infer_header_kind(payload)

    print("Replaying delivery:")
    print(f"  Aeg-Event-Type: {header_kind}")
    print(f"  URL: {args.url}")

    req = urllib.request.Request(
        args.url,
        data=json.dumps(payload).encode("utf-8"),
        headers={
            "Content-Type": "application/json",
            "Aeg-Event-Type": header_kind,
            "X-Request-ID": f"replay-{uuid.uuid4()}",
        },
        method="POST",
    )

    try:
        with urllib.request.urlopen(req) as resp:
            print(f"\nResponse: {resp.status}")
            response_body = resp.read().decode("utf-8")
            if response_body:
                print(json.dumps(json.loads(response_body), indent=2))
        return 0
    except urllib.error.HTTPError as e:
        print(f"\nError: {e.code} {e.reason}")
        error_body = e.read().decode("utf-8")
        if error_body:
            try:
                print(json.dumps(json.loads(error_body), indent=2))
            except json.JSONDecodeError:
                print(error_body)
        return 1
    except urllib.error.URLError as e:
        print(f"\nError: {e.reason}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
