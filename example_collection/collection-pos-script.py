# collection-pos-script.py
# Runs ONCE after the last request of the collection.

print("[GLOBAL POST-SCRIPT]: Collection finished.")

if response is not None:
    print(f"[GLOBAL POST-SCRIPT]: Last response status code: {response.status_code}")

elapsed = pm.timestamp() - getattr(shared, 'started_at', pm.timestamp())
print(f"[GLOBAL POST-SCRIPT]: Elapsed time: {elapsed}s")
