import json
import os

from control_center.api.main import WEBSOCKET_ENDPOINTS, app

# Get the OpenAPI schema (note: all REST routes are under /api/v1)
openapi_schema = app.openapi()

# Inject non-standard extension with WebSocket endpoint docs
openapi_schema["x-websocket-endpoints"] = WEBSOCKET_ENDPOINTS

# Write to file
output_dir = "interfaces"
os.makedirs(output_dir, exist_ok=True)
output_path = os.path.join(output_dir, "openapi.json")

with open(output_path, "w") as f:
    json.dump(openapi_schema, f, indent=2)
