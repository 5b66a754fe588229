# -*- coding: utf-8 -*-
#
# ReqHooks - Request/Response hooks for HTTP request collections
# Author: Huberto Gastal Mayer (hubertogm@gmail.com)
# License: GPLv3 (https://www.gnu.org/licenses/gpl-3.0.html)
# Project: ReqHooks - A CLI tool for executing HTTP request collections defined in YAML
#

import logging
import yaml

log = logging.getLogger('reqhooks')

def parse_request_file(file_path):
    """
    Parses a .yaml request file into the dictionary consumed by core_logic.
    """
    parsed = {
        'name': None,
        'method': 'GET',
        'url': '',
        'params': {},
        'auth': {},
        'headers': {},
        'body': ''
    }

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        log.error(f"YAML syntax error in {file_path}: {e}")
        raise
    except OSError as e:
        log.error(f"Could not read request file: {file_path} - {e}")
        raise

    if not data or not isinstance(data, dict):
        raise ValueError(f"YAML file is empty or not a dictionary: {file_path}")

    parsed['name'] = data.get('name')

    # 1. Method and URL
    req_data = data.get('request') or {}
    parsed['method'] = str(req_data.get('method', 'GET')).upper()
    parsed['url'] = req_data.get('url', '')

    # 2. Query params
    parsed['params'] = data.get('params') or {}

    # 3. Authentication, normalized to the keys core_logic expects
    auth_data = data.get('authentication') or {}
    if 'bearer_token' in auth_data:
        parsed['auth']['Bearer Token'] = auth_data['bearer_token']
    if 'basic_auth' in auth_data:
        parsed['auth']['Basic Auth'] = auth_data['basic_auth']

    # 4. Headers
    parsed['headers'] = data.get('headers') or {}

    # 5. Body
    # YAML with | (literal block) preserves the format, including line breaks
    parsed['body'] = data.get('body', '')

    return parsed
