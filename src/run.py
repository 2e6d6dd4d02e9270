#!/usr/bin/env python3

import argparse
import os
import re
import sys

import console
from branches import BranchResolver
from console import log
from credentials import RegistryTokenCredentials, StaticTokenCredentials
from registry import APIS, DEFAULT_HOSTS, RegistryClient, RegistryError
from report import RENDERERS


def regex(value):
    try:
        return re.compile(value)
    except re.error as err:
        raise argparse.ArgumentTypeError('invalid regex ' + repr(value) + ': ' + str(err))


parser = argparse.ArgumentParser(description='Report the most recent tag of every MAJOR.MINOR branch of an image repository.')
parser.add_argument('-n', '--namespace', type=str, required=True, help='The repository namespace (library for official images).')
parser.add_argument('-r', '--repo', type=str, required=True, help='The repository name.')
parser.add_argument('--host', type=str, help='The registry host (defaults to $DOCKER_TAG_BRANCHES_HOST, then hub.docker.com, or registry-1.docker.io with --api registry).')
parser.add_argument('--api', choices=sorted(APIS.keys()), default='hub', help='The tag listing api of the host (defaults to hub).')
parser.add_argument('-f', '--filter', type=regex, help='A regex to filter the tags to process.')
parser.add_argument('--format', choices=sorted(RENDERERS.keys()), default='json', help='The report format (defaults to json).')
parser.add_argument('--page-size', type=int, default=100, help='The number of tags to request per page.')
parser.add_argument('--retries', type=int, default=3, help='How often a failed page request is retried.')
parser.add_argument('--registry-token', type=str, help='A token to authenticate with instead of the docker login (defaults to $DOCKER_TAG_BRANCHES_TOKEN).')
parser.add_argument('-v', '--verbose', action='count', default=0, help='Log ignored tags and page requests.')


def parse_arguments(argv=None):
    args = parser.parse_args(argv)
    if args.host is None:
        args.host = os.environ.get('DOCKER_TAG_BRANCHES_HOST') or None
    if args.registry_token is None:
        args.registry_token = os.environ.get('DOCKER_TAG_BRANCHES_TOKEN') or None
    return args


def create_credentials(args):
    if args.registry_token:
        return StaticTokenCredentials(args.registry_token)
    if args.api == 'registry':
        return RegistryTokenCredentials(args.host or DEFAULT_HOSTS['registry'])
    return None


def create_client(args):
    return RegistryClient(
        host=args.host,
        api=args.api,
        credentials=create_credentials(args),
        page_size=args.page_size,
        retries=args.retries,
    )


def collect_branches(tags, tag_filter=None):
    resolver = BranchResolver()
    for tag in tags:
        if tag_filter and not re.search(tag_filter, tag):
            continue
        if resolver.add(tag) is None:
            log('Ignore unparsable version', tag, level=1)
    return resolver


def run_main_logic(args, client=None):
    client = client or create_client(args)
    log('Read tags for', args.namespace + '/' + args.repo, 'from', client.host, level=1)
    resolver = collect_branches(client.list_tags(args.namespace, args.repo), args.filter)
    if resolver.unparsable:
        log('Ignored', len(resolver.unparsable), 'unparsable tags')
    return RENDERERS[args.format](resolver.results())


def main(argv=None):
    args = parse_arguments(argv)
    console.verbosity = args.verbose

    try:
        output = run_main_logic(args)
    except RegistryError as err:
        log('Failed to read tags of', err.namespace + '/' + err.repository + ':', type(err).__name__ + ':', err.cause)
        return -1
    except KeyboardInterrupt:
        log('Interrupted')
        return -1

    sys.stdout.write(output)
    return 0


if __name__ == '__main__':
    sys.exit(main())
