# 010-register-pre-script.py
# Runs BEFORE 'register', after the collection pre-request hook.

# Each run registers a new user; the e-mail is saved for the login request.
environment_vars['USER_EMAIL'] = pm.random_email()
req.get_body()['email'] = environment_vars['USER_EMAIL']

print(f"[REQ PRE-SCRIPT]: Registering {environment_vars['USER_EMAIL']}")
print(f"[REQ PRE-SCRIPT]: User-Agent set by hook: {req.get_header('User-Agent')}")
