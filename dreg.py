#!/usr/bin/env python3
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#
# dreg: check, list and remove images in a docker registry.
#
# Usage:
#   dreg check
#   dreg --url https://registry.example.com list -s --table
#   dreg rm myapp:1.2 otherapp
#
#   See -h for more options
#

import os
import sys
import requests
import argparse

import dockerauth
import registrycommands
from Registry import Registry, RegistryError, registry_url

DEFAULT_URL = "http://localhost:5000"


def cmd_check(reg, args):
    registrycommands.check(reg)


def cmd_list(reg, args):
    registrycommands.print_images(reg, args.repository, sizes=args.sizes, table=args.table)


def cmd_rm(reg, args):
    result = registrycommands.remove_images(reg, args.image, verbose=args.verbose)
    result.raise_for_failures()


def build_parser():
    parser = argparse.ArgumentParser(prog='dreg', description='Docker registry client')
    parser.add_argument('--url', default=os.environ.get('REGISTRY', DEFAULT_URL),
                        help='URL of registry (default: $REGISTRY or %s)' % DEFAULT_URL)
    parser.add_argument('--docker-config', default=dockerauth.DEFAULT_DOCKER_CONFIG,
                        help='Path to docker config file for auth creds (default: %(default)s)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')
    parser.add_argument('-d', '--debug', action='store_true', help='Trace registry requests on stderr')

    subparsers = parser.add_subparsers(dest='command')

    check_parser = subparsers.add_parser('check', help='Check that registry supports V2 API')
    check_parser.set_defaults(func=cmd_check)

    list_parser = subparsers.add_parser('list', help='List images in registry')
    list_parser.add_argument('repository', nargs='*', help='Repositories to list')
    list_parser.add_argument('-s', '--sizes', action='store_true', help='Show image sizes (slow)')
    list_parser.add_argument('--table', action='store_true', help='Show output as a table')
    list_parser.set_defaults(func=cmd_list)

    rm_parser = subparsers.add_parser('rm', aliases=['rmi'], help='Remove images from registry')
    rm_parser.add_argument('image', nargs='+', help='Images to delete from registry')
    rm_parser.set_defaults(func=cmd_rm)

    return parser


def make_registry(args):
    """Build the one Registry object the command will use, with
    credentials from the docker config if they may be sent."""

    url = registry_url(args.url)
    store = dockerauth.load_docker_config(args.docker_config)
    headers = dockerauth.select_auth_header(store, url)

    reg = Registry(url, headers=headers)
    reg.debug = args.debug

    return reg


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    reg = make_registry(args)

    try:
        args.func(reg, args)

    except RegistryError as e:
        if e.is_auth_error:
            sys.exit("Unauthenticated. Login with 'docker login'")
        sys.exit(str(e))

    except requests.exceptions.ConnectionError as e:
        sys.exit("Failed to connect to %s: %s" % (args.url, e))

    except (requests.exceptions.RequestException, registrycommands.ImagesNotRemovedError) as e:
        sys.exit(str(e))


if __name__ == "__main__":
    main()
