# -*- coding: utf-8 -*-
#
# ReqHooks - Request/Response hooks for HTTP request collections
# Author: Huberto Gastal Mayer (hubertogm@gmail.com)
# License: GPLv3 (https://www.gnu.org/licenses/gpl-3.0.html)
# Project: ReqHooks - A CLI tool for executing HTTP request collections defined in YAML
#

__version__ = "1.0.0"
