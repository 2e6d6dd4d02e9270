import sys


verbosity = 0


def log(*message, level=0):
    if level > verbosity:
        return
    print('>>>', *message, file=sys.stderr)
