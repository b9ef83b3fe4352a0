"""qms_tracker.integrations — External service gateway modules.

All outbound HTTP calls to Google APIs must go through a gateway in this
package, never via bare `requests` calls in services or blueprints.

Every call is:
  - Authenticated (API key or OAuth2 bearer token injected by the gateway)
  - Retried with exponential backoff on transient failures
  - Circuit-broken to prevent hammering an API that is down
  - Logged

Current gateways:
  sheets_gateway.SheetsGateway — Google Sheets values API (catalog rows, cell writes)
  drive_gateway.DriveGateway   — Google Drive files API (folder listings)
"""
