# -*- coding: utf-8 -*-
#
# ReqHooks - Request/Response hooks for HTTP request collections
# Author: Huberto Gastal Mayer (hubertogm@gmail.com)
# License: GPLv3 (https://www.gnu.org/licenses/gpl-3.0.html)
# Project: ReqHooks - A CLI tool for executing HTTP request collections defined in YAML
#

import argparse
import os
import sys

from . import __version__
from .core_logic import (
    IGNORED_DIRS,
    setup_logging,
    run_collection,
    get_collection_name,
    load_collection_config,
    get_collection_description
)
from .reqhooks_helpers import ReqHooksHelpers


def find_collection_root(target_path):
    """
    Walks up from the target (a directory, or the folder of a single file) until
    a directory with '.environment-variables' is found, else uses that folder.
    """
    start_dir = target_path if os.path.isdir(target_path) else os.path.dirname(target_path)

    current_dir = start_dir
    while current_dir != os.path.dirname(current_dir): # While it is not the system root
        if os.path.exists(os.path.join(current_dir, '.environment-variables')):
            return current_dir
        current_dir = os.path.dirname(current_dir)
    return start_dir


def discover_request_files(target_path, collection_root, collection_config, order_name, log):
    """
    Returns the request files to execute. A single .yaml/.yml target runs alone;
    the collection root uses the named COLLECTIONS_ORDER list when configured;
    otherwise every .yaml/.yml under the target runs in alphabetical order.
    Returns None when the target is not a collection directory or request file.
    """
    if os.path.isfile(target_path):
        if target_path.endswith(('.yaml', '.yml')):
            log.info(f"Executing single request: {target_path}")
            return [target_path]
        log.error(f"The target is not a valid collection directory or a .yaml/.yml file: {target_path}")
        return None

    if not os.path.isdir(target_path):
        log.error(f"The target is not a valid collection directory or a .yaml/.yml file: {target_path}")
        return None

    request_files = []

    collections_order = collection_config.get('COLLECTIONS_ORDER') or {}
    is_root = os.path.normpath(target_path) == os.path.normpath(collection_root)
    if is_root and order_name in collections_order:
        log.info(f"Using custom execution order: '{order_name}'")
        relative_paths = collections_order[order_name]
        if not isinstance(relative_paths, list):
            log.error(f"COLLECTIONS_ORDER '{order_name}' is not a valid list.")
            return None

        for rel_path in relative_paths:
            abs_path = os.path.join(collection_root, os.path.normpath(str(rel_path)))
            if os.path.exists(abs_path):
                request_files.append(abs_path)
            else:
                log.warning(f"File specified in COLLECTIONS_ORDER not found: {abs_path}")
        return request_files

    log.info(f"Executing collection in alphabetical order: {target_path}")
    for root, dirs, files in os.walk(target_path):
        dirs[:] = sorted(d for d in dirs if d not in IGNORED_DIRS)
        for file in sorted(files):
            # Only run .yaml/.yml files that are not config files
            if file.endswith(('.yaml', '.yml')) and not file.lower().startswith('config.'):
                request_files.append(os.path.join(root, file))
    return request_files


def handle_run_command(args):
    """
    Handles the logic for the 'run' command.
    """
    target_path = os.path.abspath(args.target)
    if not os.path.exists(target_path):
        print(f"Error: Path not found: {target_path}")
        sys.exit(1)

    collection_root = find_collection_root(target_path)

    # 1. Load config and metadata
    collection_config = load_collection_config(collection_root)
    collection_name = get_collection_name(collection_root, config=collection_config)
    collection_description = get_collection_description(collection_root, config=collection_config)

    # 2. Configure Logging
    try:
        log, log_file_path = setup_logging(collection_root, collection_name, collection_description)
    except OSError as e:
        print(f"Error configuring logging in {collection_root}: {e}")
        sys.exit(1)
    log.info(f"Log file will be saved to: {log_file_path}")

    # 3. Instantiate Helpers
    pm = ReqHooksHelpers(log)

    # 4. Find files to be executed
    request_files_to_run = discover_request_files(
        target_path, collection_root, collection_config, args.collection_order, log
    )
    if request_files_to_run is None:
        sys.exit(1)
    if not request_files_to_run:
        log.warning(f"No .yaml/.yml request files found in: {target_path}")
        print(f"\nLog file generated at: {log_file_path}")
        sys.exit(0) # Exit cleanly, no work to do

    # 5. Start execution
    execution_failed = False
    try:
        run_collection(
            target_path, collection_root, request_files_to_run, log, pm,
            config=collection_config, hooks_enabled=not args.no_hooks
        )
    except Exception as e:
        # run_collection raises with an already formatted message
        log.error(str(e))
        execution_failed = True
    finally:
        print(f"\nLog file generated at: {log_file_path}")

    if execution_failed:
        sys.exit(1)


def main(argv=None):
    description = (
        f"ReqHooks v{__version__}\n"
        "License: GPLv3 (https://www.gnu.org/licenses/gpl-3.0.html)\n"
        "Author: Huberto Gastal Mayer (hubertogm@gmail.com)\n\n"
        "ReqHooks - A CLI HTTP request executor with collection pre-request/post-response hooks."
    )
    parser = argparse.ArgumentParser(
        prog='reqhooks',
        description=description,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    subparsers = parser.add_subparsers(dest='command', required=True, help='Available commands')

    # --- 'run' command ---
    parser_run = subparsers.add_parser('run', help='Execute a collection or a single request file.')
    parser_run.add_argument(
        'target',
        help="The path to the collection (directory) or request (.yaml) to be executed."
    )
    parser_run.add_argument(
        '--collection-order',
        type=str,
        default='Default',
        help="The name of the execution order from COLLECTIONS_ORDER in config.yaml."
    )
    parser_run.add_argument(
        '--no-hooks',
        action='store_true',
        help="Do not run the collection pre-request/post-response hooks."
    )
    parser_run.set_defaults(func=handle_run_command)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
