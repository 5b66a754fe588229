# collection-pre-script.py
# Runs ONCE before the first request of the collection.

print("[GLOBAL PRE-SCRIPT]: Starting the auth-service collection.")
print(f"[GLOBAL PRE-SCRIPT]: The Base URL is {environment_vars.get('BASE_URL')}")

shared.started_at = pm.timestamp()
