# -*- coding: utf-8 -*-
#
# ReqHooks - Request/Response hooks for HTTP request collections - Core Logic
# Author: Huberto Gastal Mayer (hubertogm@gmail.com)
# License: GPLv3
#
# Runs a collection of YAML requests, wrapping each one with the
# collection pre-request / post-response hooks. Color logging for the console.

import requests
import logging
import os
import re
import sys
import time
import json
import yaml # For loading config.yaml
from datetime import datetime
from urllib.parse import urlencode # For building query params
import io
from contextlib import redirect_stdout

from .request_parser import parse_request_file
from .hooks import RequestContext, ResponseContext, pre_request, post_response

# --- Global Variables ---
# Regex for variable substitution {{variable_name}} or {{pm.function(arg1, arg2)}}
VAR_REGEX = re.compile(r"\{\{(.*?)\}\}")

DEFAULT_TIMEOUT = 30
IGNORED_DIRS = ['logs', 'reports', 'files', '.venv', 'venv', '__pycache__']

# --- ANSI Color Codes for Logging ---
class Color:
    """ANSI color codes for terminal output."""
    GREY = "\033[90m"
    CYAN = "\033[96m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BOLD = "\033[1m"
    RESET = "\033[0m"

class ColorFormatter(logging.Formatter):
    """Custom formatter to add colors to console log messages."""

    FORMATS = {
        logging.DEBUG: logging.Formatter(f'{Color.GREY}DEBUG: %(message)s{Color.RESET}'),
        logging.INFO: logging.Formatter('%(message)s'), # Simple message for INFO
        logging.WARNING: logging.Formatter(f'{Color.YELLOW}WARNING: %(message)s{Color.RESET}'),
        logging.ERROR: logging.Formatter(f'{Color.RED}ERROR: %(message)s{Color.RESET}'),
        logging.CRITICAL: logging.Formatter(f'{Color.BOLD}{Color.RED}CRITICAL: %(message)s{Color.RESET}'),
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno, self.FORMATS[logging.INFO])
        message = log_fmt.format(record)

        # Apply special colors for INFO messages based on content
        if record.levelno == logging.INFO:
            text = record.getMessage().strip()
            if text.startswith(("PASSED:", "✅")):
                message = f"{Color.GREEN}{message}{Color.RESET}"
            elif text.startswith(("Dispatching", "🚀")):
                message = f"{Color.CYAN}{message}{Color.RESET}"
            elif text.startswith(("Executing collection", "Processing request file",
                                  "Summary:", "---", "Execution finished.")):
                message = f"{Color.BOLD}{message}{Color.RESET}"

        elif record.levelno == logging.ERROR:
            text = record.getMessage()
            if "FAILED:" in text or "Error executing script" in text or text.startswith("❌"):
                message = f"{Color.BOLD}{Color.RED}ERROR: {text}{Color.RESET}"

        return message

# --- Logging Setup ---
def setup_logging(collection_root, collection_name="reqhooks_run", collection_description=None):
    """Configures logging to file and console."""
    log_dir = os.path.join(collection_root, 'logs')
    os.makedirs(log_dir, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    safe_collection_name = re.sub(r'\W+', '_', collection_name)
    log_filename = f"run_{safe_collection_name}_{timestamp}.log"
    log_filepath = os.path.join(log_dir, log_filename)

    log = logging.getLogger('reqhooks')
    log.setLevel(logging.DEBUG) # Capture everything

    # Remove existing handlers to avoid duplicate logs
    for handler in log.handlers[:]:
        log.removeHandler(handler)
        handler.close()

    # File Handler - Logs everything (DEBUG level)
    fh = logging.FileHandler(log_filepath, encoding='utf-8')
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    log.addHandler(fh)

    # Console Handler - Logs INFO level and above
    ch = logging.StreamHandler(sys.stdout)
    ch.setLevel(logging.INFO)
    ch.setFormatter(ColorFormatter())
    log.addHandler(ch)

    log.info(f"Collection Name: {collection_name}")
    if collection_description:
        log.info(f"Collection Description: {collection_description}")

    return log, log_filepath

# --- Configuration Loading ---
def _load_yaml_config(folder_path):
    config_path = os.path.join(folder_path, 'config.yaml')
    if not os.path.exists(config_path):
        config_path = os.path.join(folder_path, 'config.yml')
    if not os.path.exists(config_path):
        return None, config_path
    with open(config_path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f), config_path

def load_collection_config(collection_root):
    """Loads the main config.yaml from the collection root."""
    try:
        config_data, config_path = _load_yaml_config(collection_root)
    except (OSError, yaml.YAMLError) as e:
        # Using print because logger might not be configured yet
        print(f"Warning: Could not read or parse config file in {collection_root}: {e}")
        return {}
    if config_data and isinstance(config_data, dict):
        return config_data
    return {}

def get_collection_name(collection_root, config=None):
    """Tries to get the collection name from config or defaults to directory name."""
    if config is None:
        config = load_collection_config(collection_root)
    return config.get('COLLECTION_NAME', os.path.basename(os.path.normpath(collection_root)))

def get_collection_description(collection_root, config=None):
    """Gets the collection description from the config."""
    if config is None:
        config = load_collection_config(collection_root)
    return config.get('DESCRIPTION', None)

def load_environment(collection_root, log):
    """Loads environment variables from .environment-variables file."""
    env_vars = {}
    env_file = os.path.join(collection_root, '.environment-variables')
    if not os.path.exists(env_file):
        log.warning(f"Environment file not found: {env_file}")
        return env_vars

    try:
        with open(env_file, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    value = value.strip()
                    # Strip quotes from value
                    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                        value = value[1:-1]
                    env_vars[key.strip()] = value
        log.info(f"Global environment variables loaded: {len(env_vars)} keys.")
    except OSError as e:
        log.error(f"Error loading environment variables from {env_file}: {e}")
    return env_vars

def write_environment_file(collection_root, environment_vars, log):
    """
    Writes the environment dictionary back to the .environment-variables file.
    """
    env_file = os.path.join(collection_root, '.environment-variables')
    # Internal keys (like _collection_root) are never saved
    clean_vars = {k: v for k, v in environment_vars.items() if not k.startswith('_')}
    try:
        with open(env_file, 'w', encoding='utf-8') as f:
            for key, value in clean_vars.items():
                if re.search(r'[\s#"\']', str(value)):
                    f.write(f'{key}="{value}"\n')
                else:
                    f.write(f'{key}={value}\n')
        log.debug(f"Environment variables successfully written to {env_file}")
    except OSError as e:
        log.error(f"Error writing to .environment-variables file: {e}")

def load_folder_config(folder_path, log):
    """Loads folder-specific configuration from config.yaml."""
    try:
        data, config_file = _load_yaml_config(folder_path)
    except yaml.YAMLError as e:
        log.error(f"YAML syntax error in folder config {folder_path}: {e}")
        return {}
    except OSError as e:
        log.error(f"Error loading folder config from {folder_path}: {e}")
        return {}

    if data is None:
        log.debug(f"No folder config file found in {folder_path}")
        return {}
    if not isinstance(data, dict):
        log.warning(f"Invalid format in folder config file: {config_file}. Expected a dictionary.")
        return {}
    log.debug(f"Folder config loaded from {config_file}: {len(data)} keys.")
    return data

# --- Variable Substitution ---
def substitute_variables(text, variables, pm_instance, log):
    """Substitutes {{variable}} placeholders in a string."""
    if not isinstance(text, str):
        return text

    def replace_match(match):
        expression = match.group(1).strip()
        if expression.startswith("pm."):
            try:
                # NOTE: Collections are local and trusted; helpers are evaluated as Python.
                return str(eval(expression, {'pm': pm_instance}))
            except Exception as e:
                log.error(f"Error executing pm helper function '{{{{{expression}}}}}': {e}")
                return match.group(0) # Keep original on error
        # Keep original if var not found
        return str(variables.get(expression, match.group(0)))

    return VAR_REGEX.sub(replace_match, text)

def substitute_variables_recursive(data, variables, pm_instance, log):
    """Recursively substitutes variables in nested dicts and lists."""
    if isinstance(data, dict):
        return {k: substitute_variables_recursive(v, variables, pm_instance, log) for k, v in data.items()}
    elif isinstance(data, list):
        return [substitute_variables_recursive(item, variables, pm_instance, log) for item in data]
    elif isinstance(data, str):
        return substitute_variables(data, variables, pm_instance, log)
    return data

# --- Script Execution ---
def execute_script(script_path, environment_vars, log, pm, req=None, res=None, response=None, shared_scope=None):
    """
    Executes a Python script, captures its output, and handles specific errors.
    Returns a tuple: (env_changed, script_output, script_failed_exception, assertion_error).
    """
    if not os.path.exists(script_path):
        log.debug(f"Script not found, skipping: {script_path}")
        return False, "", None, False

    log.info(f"Executing script: {script_path}")

    env_before = environment_vars.copy()
    script_output = io.StringIO()
    script_failed_exception = None
    assertion_error = False

    script_globals = {
        'pm': pm,
        'environment_vars': environment_vars,
        'req': req,
        'res': res,
        'response': response,
        'log': log,
        'requests': requests,
        'json': json,
        'os': os,
        're': re,
        'time': time,
        'shared': shared_scope
    }

    try:
        with open(script_path, 'r', encoding='utf-8') as f:
            script_code = f.read()
        with redirect_stdout(script_output):
            exec(compile(script_code, script_path, 'exec'), script_globals)

    except requests.exceptions.JSONDecodeError as e:
        script_failed_exception = e
        log.error(
            f"❌ [{pm.request_name or 'Unnamed Test'}] - FAILED: Failed to decode JSON from the response body "
            f"in {script_path}. The server returned a non-JSON response: {e}"
        )
    except AssertionError as e:
        # pm.test already logged the failure
        script_failed_exception = e
        assertion_error = True
        log.debug(f"Assertion failed in {script_path}: {e}")
    except Exception as e:
        script_failed_exception = e
        log.error(f"Error executing script {script_path}: {e}", exc_info=True)

    env_changed = environment_vars != env_before
    if env_changed:
        log.info("Environment variables were modified by the script.")

    output = script_output.getvalue()
    if output.strip():
        log.debug(f"--- Script Output ---\n{output.strip()}\n---------------------")

    return env_changed, output, script_failed_exception, assertion_error

# --- Request Execution ---
def _resolve_upload_path(file_path, request_data, current_vars):
    if os.path.isabs(file_path):
        return file_path if os.path.exists(file_path) else None

    request_dir = os.path.dirname(request_data.get('file_path', '.'))
    collection_root = current_vars.get('_collection_root', request_dir)
    candidates = [
        os.path.join(request_dir, 'files', file_path),
        os.path.join(request_dir, file_path),
        os.path.join(collection_root, file_path),
    ]
    for candidate in candidates:
        if os.path.exists(candidate):
            return candidate
    return None

def prepare_request(request_data, current_vars, pm_instance, log):
    """
    Substitutes variables in a parsed request and builds the RequestContext
    that hooks and pre-scripts can modify before dispatch.
    """
    method = request_data['method']
    base_url = substitute_variables(request_data['url'], current_vars, pm_instance, log)
    headers = substitute_variables_recursive(request_data['headers'], current_vars, pm_instance, log)
    auth_config = substitute_variables_recursive(request_data['auth'], current_vars, pm_instance, log)
    body = substitute_variables_recursive(request_data['body'], current_vars, pm_instance, log)
    params = substitute_variables_recursive(request_data['params'], current_vars, pm_instance, log)

    # Build the final URL with query params
    url = base_url
    if params:
        query_string = urlencode(params)
        if '?' not in url:
            url += '?'
        elif not url.endswith(('&', '?')):
            url += '&'
        url += query_string

    req = RequestContext(method, url, headers)

    # --- Authentication ---
    if 'Bearer Token' in auth_config:
        log.debug("Applying Bearer Token authentication")
        req.set_header('Authorization', f"Bearer {auth_config['Bearer Token']}")
    elif 'Basic Auth' in auth_config:
        log.debug("Applying Basic Auth authentication")
        basic = auth_config['Basic Auth'] or {}
        req.auth = (basic.get('username', ''), basic.get('password', ''))

    # --- Body & Content-Type Handling ---
    content_type = (req.get_header('Content-Type') or '').lower()

    if body is None or body == '':
        return req

    if isinstance(body, dict) and 'multipart/form-data' in content_type:
        log.debug("Preparing multipart/form-data payload")
        files = {}
        data_payload = {}
        for key, value_config in body.items():
            if isinstance(value_config, dict) and value_config.get('type') == 'file':
                file_path_raw = value_config.get('src', '')
                final_path = _resolve_upload_path(file_path_raw, request_data, current_vars)
                if final_path is None:
                    log.error(f"File not found for multipart upload: {file_path_raw}")
                    continue
                try:
                    files[key] = (os.path.basename(final_path), open(final_path, 'rb'))
                    log.debug(f"Attaching file '{key}': {final_path}")
                except OSError as e:
                    log.error(f"Error opening file {final_path} for multipart upload: {e}")
            else:
                data_payload[key] = str(value_config)

        req.data = data_payload
        req.files = files
        # Let requests set the boundary
        req.remove_header('Content-Type')

    elif isinstance(body, str): # Raw body
        req.data = body.encode('utf-8')
        if not content_type:
            req.set_header('Content-Type', 'text/plain')

    elif isinstance(body, (dict, list)):
        if 'application/x-www-form-urlencoded' in content_type:
            req.data = body # requests will urlencode
        else:
            req.json = body
            if 'application/json' not in content_type:
                req.set_header('Content-Type', 'application/json')
    else:
        log.warning(f"Unsupported body type: {type(body)}. Ignoring body.")

    return req

def dispatch_request(req, log, timeout=DEFAULT_TIMEOUT):
    """
    Sends the prepared request. Returns (response, duration_ms);
    response is None when the request could not be completed.
    """
    response = None
    start_time_req = time.time()
    try:
        log.info(f"Dispatching {req.method} to: {req.url}")
        log.debug(f"HEADERS: {req.headers}")
        if req.data:
            log.debug(f"DATA: {req.data if isinstance(req.data, dict) else req.data[:200]}")
        if req.json is not None:
            log.debug(f"JSON: {json.dumps(req.json, indent=2, ensure_ascii=False)}")
        if req.files:
            log.debug(f"FILES: {list(req.files.keys())}")

        response = requests.request(
            req.method,
            req.url,
            headers=req.headers,
            data=req.data,
            json=req.json,
            auth=req.auth,
            files=req.files,
            timeout=timeout
        )
    except requests.exceptions.RequestException as e:
        log.error(f"Request failed: {e}")
    finally:
        duration_ms = (time.time() - start_time_req) * 1000
        for f_tuple in (req.files or {}).values():
            try:
                f_tuple[1].close()
            except OSError as e:
                log.warning(f"Error closing file handle: {e}")

    if response is not None:
        log.debug(f"STATUS: {response.status_code} {response.reason} ({duration_ms:.0f} ms)")
        log.debug(f"HEADERS (Response): {dict(response.headers)}")
        try:
            resp_json = response.json()
            log.debug(f"BODY (Response JSON): \n{json.dumps(resp_json, indent=2, ensure_ascii=False)}")
        except ValueError:
            resp_text = response.text
            if len(resp_text) > 1000:
                log.debug(f"BODY (Response Text): {resp_text[:1000]}... (truncated)")
            else:
                log.debug(f"BODY (Response Text): {resp_text}")

    return response, duration_ms

def _script_path(req_file, suffix):
    base, _ = os.path.splitext(req_file)
    return f"{base}-{suffix}.py"

# --- Collection Runner ---
def run_collection(target_path, collection_root, request_files, log, pm, config=None, hooks_enabled=True):
    """Runs a collection of requests or a single request."""
    if config is None:
        config = load_collection_config(collection_root)
    hooks_enabled = hooks_enabled and config.get('HOOKS_ENABLED', True)
    timeout = config.get('REQUEST_TIMEOUT', DEFAULT_TIMEOUT)

    log.info(f"Starting execution. Collection root: {collection_root}")
    log.info(f"Target: {target_path}")
    if not hooks_enabled:
        log.info("Collection hooks are disabled.")

    global_env_vars = load_environment(collection_root, log)
    global_env_vars['_collection_root'] = collection_root

    results = {'total': 0, 'success': 0, 'failure': 0, 'warnings': 0}
    failed_files = []

    # Shared scope object for all scripts in the collection
    shared_scope = type("SharedScope", (object,), {})()

    # --- Collection Pre-script (ONCE) ---
    collection_pre_script = os.path.join(collection_root, 'collection-pre-script.py')
    if os.path.exists(collection_pre_script):
        log.info("-" * 50)
        env_changed, _, _, _ = execute_script(collection_pre_script, global_env_vars, log, pm, shared_scope=shared_scope)
        if env_changed:
            write_environment_file(collection_root, global_env_vars, log)

    last_response = None
    for req_file in request_files:
        log.info("-" * 50)
        log.info(f"Processing request file: {req_file}")
        results['total'] += 1

        try:
            success, warning, response = run_request(
                req_file, global_env_vars, log, pm, shared_scope, hooks_enabled, timeout
            )
        except Exception as e:
            log.error(f"Critical error during processing of {req_file}: {e}", exc_info=True)
            success, warning, response = False, False, None

        if response is not None:
            last_response = response
        if warning:
            results['warnings'] += 1
        if success:
            results['success'] += 1
        else:
            results['failure'] += 1
            failed_files.append(req_file)

    # --- Collection Post-script (ONCE) ---
    collection_pos_script = os.path.join(collection_root, 'collection-pos-script.py')
    if os.path.exists(collection_pos_script):
        log.info("-" * 50)
        env_changed, _, _, _ = execute_script(
            collection_pos_script, global_env_vars, log, pm,
            response=last_response, shared_scope=shared_scope
        )
        if env_changed:
            write_environment_file(collection_root, global_env_vars, log)

    log.info("-" * 50)
    log.info("Execution finished.")
    passed_asserts = len(pm.passed_tests)
    failed_asserts = len(pm.failed_tests)
    log.info(
        f"Summary: {results['total']} total requests | "
        f"{results['success']} success | "
        f"{results['warnings']} warnings | "
        f"{results['failure']} failure | "
        f"Asserts: {passed_asserts} passed, {failed_asserts} failed"
    )
    log.info("-" * 50)

    # Raise so the CLI can report the failure and exit with an error code
    if results['failure'] > 0:
        failed_files_str = "\n".join(
            f'  - {os.path.relpath(f, collection_root)}' for f in dict.fromkeys(failed_files)
        )
        raise Exception(f"{results['failure']} request(s) failed:\n{failed_files_str}")

    return results

def run_request(req_file, global_env_vars, log, pm, shared_scope=None, hooks_enabled=True, timeout=DEFAULT_TIMEOUT):
    """
    Runs a single request file through hooks, scripts and dispatch.
    Returns (success, warning, response).
    """
    collection_root = global_env_vars.get('_collection_root', os.path.dirname(req_file))

    # Use a copy for the request to keep global env clean between requests
    current_vars = global_env_vars.copy()
    current_vars.update(load_folder_config(os.path.dirname(req_file), log))

    try:
        request_data = parse_request_file(req_file)
    except Exception as e:
        log.error(f"Failed to parse request file {req_file}: {e}", exc_info=True)
        return False, False, None
    request_data['file_path'] = req_file
    pm.request_name = request_data.get('name') or os.path.basename(req_file)

    success = True
    req = prepare_request(request_data, current_vars, pm, log)

    if hooks_enabled:
        pre_request(req, log)

    # Request pre-script
    env_changed, _, script_error, _ = execute_script(
        _script_path(req_file, 'pre-script'), current_vars, log, pm, req=req, shared_scope=shared_scope
    )
    if env_changed:
        global_env_vars.update(current_vars)
        write_environment_file(collection_root, global_env_vars, log)
    if script_error:
        success = False

    response, duration_ms = dispatch_request(req, log, timeout=timeout)
    res = None
    if response is not None:
        pm.set_response(response)
        res = ResponseContext.from_response(response, duration_ms)
        if hooks_enabled:
            post_response(res, log)

    # Request post-script
    req_pos_script = _script_path(req_file, 'pos-script')
    has_pos_script = os.path.exists(req_pos_script)
    post_env_changed, _, post_script_error, post_assertion_error = execute_script(
        req_pos_script, current_vars, log, pm, req=req, res=res, response=response, shared_scope=shared_scope
    )
    if post_env_changed:
        global_env_vars.update(current_vars)
        write_environment_file(collection_root, global_env_vars, log)

    http_status = response.status_code if response is not None else 0
    label = pm.request_name or 'Unnamed Test'
    warning = False

    if has_pos_script:
        # With a post-script, the script decides the outcome
        if post_assertion_error:
            log.error(f"❌ [{label}] - FAILED: Post-script assertions failed.")
            success = False
        elif post_script_error is not None:
            log.error(f"❌ [{label}] - FAILED: Post-script execution error.")
            success = False
    else:
        # Without a post-script, classify by the HTTP response
        if http_status >= 500:
            log.error(f"❌ [{label}] - FAILED: Server error {http_status}.")
            success = False
        elif http_status >= 400:
            log.warning(f"⚠️ [{label}] - WARNING: Client error {http_status}.")
            warning = True
        elif http_status == 0:
            log.error(f"❌ [{label}] - FAILED: No response received.")
            success = False

    return success, warning, response
