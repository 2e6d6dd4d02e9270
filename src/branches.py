import re
from collections import namedtuple

from versions import parse_version


BranchResult = namedtuple('BranchResult', ['key', 'selected'])


def identifier_key(identifier):
    # numeric identifiers sort before alphanumeric ones
    if re.fullmatch(r'[0-9]+', identifier):
        return (0, int(identifier), '')
    return (1, 0, identifier)


def recency_key(v):
    """Sort key ordering the versions of one branch from oldest to most recent.

    1. higher patch wins, a missing patch counts as 0
    2. no suffix beats any suffix
    3. suffixes compare identifier by identifier (numbers numerically,
       everything else lexically); this is only an approximation of
       pre-release ordering, e.g. rc10 sorts before rc2
    4. the lexicographically last raw tag wins what is left
    """
    patch = v.patch if v.patch is not None else 0
    stable = not v.prerelease
    return (patch, stable, tuple(identifier_key(i) for i in v.prerelease), v.original)


class Branch:
    def __init__(self, key):
        self.key = key
        self.members = {}

    def add(self, version):
        self.members[version.original] = version

    def select(self):
        return max(self.members.values(), key=recency_key)

    def result(self):
        return BranchResult(self.key, self.select())


class BranchResolver:
    def __init__(self):
        self.branches = {}
        self.unparsable = []
        self.unparsable_seen = set()

    def add(self, tag):
        version = parse_version(tag)
        if version is None:
            if tag not in self.unparsable_seen:
                self.unparsable_seen.add(tag)
                self.unparsable.append(tag)
            return None
        self.add_version(version)
        return version

    def add_version(self, version):
        key = (version.major, version.minor)
        if key not in self.branches:
            self.branches[key] = Branch(key)
        self.branches[key].add(version)

    def results(self):
        return [self.branches[key].result() for key in sorted(self.branches.keys())]


def resolve(tags):
    resolver = BranchResolver()
    for tag in tags:
        resolver.add(tag)
    return resolver
