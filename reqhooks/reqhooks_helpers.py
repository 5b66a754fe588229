# -*- coding: utf-8 -*-
#
# ReqHooks - Request/Response hooks for HTTP request collections
# Author: Huberto Gastal Mayer (hubertogm@gmail.com)
# License: GPLv3 (https://www.gnu.org/licenses/gpl-3.0.html)
# Project: ReqHooks - A CLI tool for executing HTTP request collections defined in YAML
#

import logging
import random
import string
import time
import uuid

from faker import Faker

from .hooks import iso_timestamp

"""
Helper functions inspired by Postman/Bruno (pm.variables, pm.test, etc.)
In our scripts, this will be accessed as 'pm'.
Ex: {{pm.random_int(1, 10)}} or {{pm.random_email()}}
"""

class ReqHooksHelpers:
    """
    Contains a set of utility functions that can be injected
    into pre/post scripts and used in variable substitutions.
    """

    def __init__(self, log=None, locale='pt_BR'):
        self.log = log or logging.getLogger('reqhooks')
        self.request_name = None
        self.response = None
        self.passed_tests = []
        self.failed_tests = []
        # A place to store dynamic variables if needed (like pm.variables)
        self._variables = {}
        self._faker = Faker(locale)

    def set_variable(self, key, value):
        """Defines a dynamic variable."""
        self._variables[key] = value

    def get_variable(self, key):
        """Gets a dynamic variable."""
        return self._variables.get(key)

    def set_response(self, response):
        """Keeps the last response received by the runner."""
        self.response = response

    # --- Assertions ---

    def test(self, name, fn):
        """
        Runs an assertion function and records the result.
        Failures are logged and re-raised so the runner marks the request as failed.
        """
        label = f"[{self.request_name or 'Unnamed Test'}] {name}"
        try:
            fn()
        except AssertionError as e:
            self.failed_tests.append(label)
            self.log.error(f"FAILED: {label} | Assertion failed | {e}")
            raise
        self.passed_tests.append(label)
        self.log.info(f"PASSED: {label}")

    # --- Dynamic Functions ({{pm.helper()}}) ---

    def timestamp(self):
        """Returns the current Unix timestamp in seconds."""
        return int(time.time())

    def iso_timestamp(self):
        """Returns the current UTC time in the same format as the X-Request-Timestamp header."""
        return iso_timestamp()

    def random_int(self, min_val=0, max_val=1000):
        """Returns a random integer within the range."""
        return random.randint(int(min_val), int(max_val))

    def random_choice(self, *choices):
        """Returns a random choice from the provided arguments."""
        if not choices:
            return ""
        return random.choice(choices)

    def random_chars(self, length=10, char_set=string.ascii_letters + string.digits):
        """Returns a random string from the character set."""
        length = int(length)
        return ''.join(random.choice(char_set) for _ in range(length))

    def random_uuid(self):
        return str(uuid.uuid4())

    def random_email(self):
        """Returns a unique-looking e-mail, useful for register requests."""
        user, domain = self._faker.email().split('@', 1)
        return f"{user}.{self.random_chars(6).lower()}@{domain}"

    def random_first_name(self):
        return self._faker.first_name()

    def random_last_name(self):
        return self._faker.last_name()

    def random_phone(self):
        return self._faker.phone_number()

# End of ReqHooksHelpers class
