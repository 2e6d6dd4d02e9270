import re
from collections import namedtuple


ParsedVersion = namedtuple('ParsedVersion', ['major', 'minor', 'patch', 'prerelease', 'original'])

# registries limit tag names to 128 characters
MAX_TAG_LENGTH = 128

VERSION_PATTERN = re.compile(
    r'^(?P<major>[0-9]+)\.(?P<minor>[0-9]+)(?:\.(?P<patch>[0-9]+))?'
    r'(?P<build>(?:\.[0-9]+)*)'
    r'(?:[-+](?P<suffix>.*))?\Z'
)


def split_identifiers(text):
    return tuple(i for i in re.split(r'[.+-]', text) if i)


def parse_version(text):
    """Parse a registry tag into a ParsedVersion, or return None.

    Only tags starting with MAJOR.MINOR are accepted. Numeric parts after
    PATCH (1.2.3.4) are kept as build identifiers in front of the suffix.
    """
    if len(text) > MAX_TAG_LENGTH:
        return None
    m = VERSION_PATTERN.match(text)
    if not m:
        return None
    result = m.groupdict()

    prerelease = split_identifiers(result['build'])
    if result['suffix'] is not None:
        suffix = split_identifiers(result['suffix'])
        if not suffix:
            return None
        prerelease += suffix

    return ParsedVersion(
        major=int(result['major']),
        minor=int(result['minor']),
        patch=int(result['patch']) if result['patch'] is not None else None,
        prerelease=prerelease,
        original=text,
    )


def str_version(v):
    return v.original


def str_branch(key):
    major, minor = key
    return str(major) + '.' + str(minor)
