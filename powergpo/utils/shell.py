#!/usr/bin/env python3
import shutil
from powergpo.utils.colors import bcolors

def _safe(callable_obj, default=None):
    try:
        return callable_obj()
    except Exception:
        return default

def get_prompt(powergpo, args=None):
    init_proto = _safe(lambda: powergpo.conn.get_proto(), "LDAP")
    server_dns = _safe(lambda: powergpo.get_server_dns(), None) or "<server>"
    nameserver = _safe(lambda: powergpo.conn.get_nameserver(), None)
    cur_user = _safe(lambda: powergpo.conn.who_am_i(), "")

    try:
        width = shutil.get_terminal_size(fallback=(100, 24)).columns
    except OSError:
        width = 100

    if width < 100:
        return (
            f"{bcolors.OKBLUE}PG{bcolors.ENDC} "
            f"{bcolors.WARNING}{bcolors.BOLD}{init_proto}{bcolors.ENDC} "
            f"[{bcolors.OKCYAN}{server_dns}{bcolors.ENDC}] "
            f"[{cur_user}] "
            f"NS:{nameserver if nameserver else '<auto>'} "
            f"{bcolors.OKGREEN}❯{bcolors.ENDC} "
        )

    return (
        f"{bcolors.OKBLUE}╭─{bcolors.ENDC}"
        f"{bcolors.WARNING}{bcolors.BOLD}{init_proto}{bcolors.ENDC}"
        f"{bcolors.OKBLUE}─[{bcolors.ENDC}{bcolors.OKCYAN}{server_dns}{bcolors.ENDC}{bcolors.OKBLUE}]{bcolors.ENDC}"
        f"{bcolors.OKBLUE}─[{bcolors.ENDC}{cur_user}{bcolors.OKBLUE}]{bcolors.ENDC}"
        f"{bcolors.OKBLUE}-[NS:{nameserver if nameserver else '<auto>'}]{bcolors.ENDC}"
        f"\n{bcolors.OKBLUE}╰─{bcolors.BOLD}PG{bcolors.ENDC} {bcolors.OKGREEN}❯{bcolors.ENDC} "
    )
