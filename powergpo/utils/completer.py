import os
import shlex
try:
    import gnureadline as readline
except ImportError:
    import readline

COMMANDS = {
    'Update-GPOVersion':['-GUID','-Name','-VersionType','-Domain','-Server','-SysvolPath','-WhatIf','-Select','-Count','-TableView','-OutFile'],
    'Get-GPLink':['-GUID','-Name','-Scope','-Target','-Domain','-Server','-Select','-Count','-TableView','-OutFile'],
    'Get-GPOBackup':['-Path','-GUID','-Name','-Select','-Count','-TableView','-OutFile'],
    'whoami':'',
    'clear':'',
    'exit':'',
}

VALUE_CHOICES = {
    '-VersionType': ['User', 'Computer', 'Both'],
    '-Scope': ['Target', 'Domain', 'Sites', 'EntireForest'],
    '-TableView': ['md', 'csv'],
}

class Completer(object):

    def _listdir(self, root):
        "List directory 'root' appending the path separator to subdirs."
        res = []
        for name in os.listdir(root):
            path = os.path.join(root, name)
            if os.path.isdir(path):
                name += os.sep
            res.append(name)
        return res

    def _complete_path(self, path=None):
        "Perform completion of filesystem path."
        if not path:
            return self._listdir('.')
        dirname, rest = os.path.split(os.path.expanduser(path))
        tmp = dirname if dirname else '.'
        res = [os.path.join(dirname, p)
                for p in self._listdir(tmp) if p.startswith(rest)]
        # more than one match, or single match which does not exist (typo)
        if len(res) > 1 or not os.path.exists(path):
            return res
        # resolved to a single directory, so return list of files below it
        if os.path.isdir(path):
            return [os.path.join(path, p) for p in self._listdir(path)]
        # exact file match terminates this completion
        return [path + ' ']

    def complete(self, text, state):
        buffer = readline.get_line_buffer()
        begidx = readline.get_begidx()
        endidx = readline.get_endidx()

        left = buffer[:begidx]
        right = buffer[endidx:]

        try:
            left_tokens = shlex.split(left)
        except ValueError:
            left_tokens = shlex.split(left + '"')

        try:
            right_tokens = shlex.split(right)
        except ValueError:
            right_tokens = shlex.split(right + '"')

        if not left_tokens:
            prefix = text.strip()
            results = [c + ' ' for c in list(COMMANDS.keys()) if c.casefold().startswith(prefix.casefold())] + [None]
            return results[state]

        cmd = left_tokens[0].strip().casefold()

        if cmd in (c.casefold() for c in COMMANDS.keys()):
            full_cmd = [c for c in list(COMMANDS.keys()) if c.casefold() == cmd][0]

            path_flags = ['-OutFile', '-Path', '-SysvolPath']

            tokens_before_current_args = left_tokens[1:] if len(left_tokens) > 1 else []
            used_flags = [t for t in tokens_before_current_args + right_tokens if t.startswith('-')]

            prev_token = tokens_before_current_args[-1] if tokens_before_current_args else None

            if prev_token in path_flags:
                results = self._complete_path(text if text else None) + [None]
                return results[state]

            if prev_token in VALUE_CHOICES:
                results = [v + ' ' for v in VALUE_CHOICES[prev_token] if v.casefold().startswith(text.casefold())] + [None]
                return results[state]

            if text.startswith('-') or not text:
                available_flags = [arg for arg in COMMANDS[full_cmd] if arg not in used_flags]
                results = [arg + ' ' for arg in available_flags if arg.casefold().startswith(text.casefold())] + [None]
                return results[state]

        return None

    def setup_completer(self):
        readline.set_completer_delims(' \t\n;')
        readline.parse_and_bind("tab: complete")
        readline.set_completer(self.complete)
