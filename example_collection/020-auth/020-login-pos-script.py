# 020-login-pos-script.py
# Runs AFTER 'login', after the collection post-response hook.

def assert_status(expected):
    assert res.get_status() == expected, f"expected {expected}, got {res.get_status()}"

def check_token(data):
    assert data.get('accessToken'), "accessToken missing from response"
    assert data.get('tokenType') == 'Bearer'

pm.test("Status code is 200", lambda: assert_status(200))

body = res.get_body()
data = body.get('data') or {}

pm.test("Access token returned", lambda: check_token(data))

environment_vars['ACCESS_TOKEN'] = data['accessToken']
environment_vars['REFRESH_TOKEN'] = data.get('refreshToken', '')
print("[REQ POST-SCRIPT]: Tokens saved to environment.")
