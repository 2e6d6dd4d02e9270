import json

from versions import str_branch, str_version


def report_entries(results):
    return [
        {'branch': str_branch(r.key), 'tag': str_version(r.selected)} for r in sorted(results, key=lambda r: r.key)
    ]


def render_json(results):
    return json.dumps(report_entries(results), indent=2) + '\n'


def render_text(results):
    lines = ['- ' + e['branch'] + ' \t-> ' + e['tag'] for e in report_entries(results)]
    return ''.join(line + '\n' for line in lines)


RENDERERS = {
    'json': render_json,
    'text': render_text,
}
