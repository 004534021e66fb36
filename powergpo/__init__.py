#!/usr/bin/env python3
from powergpo.powergpo import PowerGPO
from powergpo.utils.helpers import sanitize_component
from powergpo.utils.formatter import FORMATTER
from powergpo.utils.completer import Completer
from powergpo.utils.connections import CONNECTION
from powergpo.utils.logging import LOG
from powergpo.utils.parsers import powergpo_arg_parse, arg_parse
from powergpo.utils.shell import get_prompt

from impacket.smbconnection import SessionError
import ldap3
import shlex
import sys
import os

def run_command(powergpo, pv_args):
    """Dispatch a parsed shell command, returns the entries to display"""
    module = pv_args.module.casefold()
    if module == 'update-gpoversion':
        return powergpo.update_gpoversion(args=pv_args)
    elif module == 'get-gplink':
        return powergpo.get_gplink(args=pv_args)
    elif module == 'get-gpobackup':
        return powergpo.get_gpobackup(args=pv_args)
    return None

def main():
    args = arg_parse()

    flat_domain = args.domain.split('.')[0] if '.' in args.domain else args.domain
    flat_domain = sanitize_component(flat_domain.lower())
    username = sanitize_component(args.username.lower())
    ldap_address = sanitize_component(args.ldap_address.lower())

    components = [flat_domain, username, ldap_address]
    folder_name = '-'.join(filter(None, components)) or "default-log"

    log_handler = LOG(folder_name)

    if args.debug:
        logging = log_handler.setup_logger("DEBUG")
    else:
        logging = log_handler.setup_logger()

    try:
        conn = CONNECTION(args)
        powergpo = PowerGPO(conn, args)

        comp = Completer()
        comp.setup_completer()

        while True:
            try:
                if args.query:
                    cmd = args.query
                else:
                    cmd = input(get_prompt(powergpo, args))

                if cmd:
                    try:
                        cmd = shlex.split(cmd)
                    except ValueError as e:
                        if args.stack_trace:
                            raise e
                        else:
                            logging.error(str(e))
                            continue

                    pv_args = powergpo_arg_parse(cmd)

                    if pv_args and pv_args.module:
                        try:
                            entries = None
                            if pv_args.module.casefold() == 'whoami':
                                print(conn.who_am_i())
                            elif pv_args.module.casefold() == 'clear':
                                os.system('cls' if os.name == 'nt' else 'clear')
                            elif pv_args.module.casefold() == 'exit':
                                log_handler.save_history()
                                conn.close()
                                sys.exit(0)
                            else:
                                entries = run_command(powergpo, pv_args)

                            if entries:
                                if pv_args.outfile:
                                    if os.path.exists(os.path.expanduser(pv_args.outfile)):
                                        logging.error("%s exists "%(pv_args.outfile))
                                        continue

                                formatter = FORMATTER(pv_args)
                                if pv_args.count:
                                    formatter.count(entries)
                                elif pv_args.tableview:
                                    formatter.table_view(entries)
                                elif pv_args.select is not None:
                                    if isinstance(pv_args.select, int):
                                        formatter.print_index(entries)
                                    else:
                                        formatter.print_select(entries)
                                else:
                                    formatter.print(entries)
                        except ValueError as e:
                            logging.error(str(e))
                        except SessionError as e:
                            logging.error(f"SMB error: {str(e)}")
                        except ldap3.core.exceptions.LDAPInvalidFilterError as e:
                            logging.error(str(e))
                        except ldap3.core.exceptions.LDAPAttributeError as e:
                            logging.error(str(e))
                        except ldap3.core.exceptions.LDAPSocketOpenError as e:
                            logging.error(f"Connection failed: {str(e)}")
                        except ldap3.core.exceptions.LDAPBindError as e:
                            logging.error(f"Authentication failed: {str(e)}")
            except KeyboardInterrupt:
                print()
            except EOFError:
                log_handler.save_history()
                print("Exiting...")
                conn.close()
                sys.exit(0)
            except (ldap3.core.exceptions.LDAPSocketSendError,
                    ldap3.core.exceptions.LDAPSocketReceiveError) as e:
                logging.info(f"LDAP Socket Error: {str(e)}")
                conn.close()
                log_handler.save_history()
            except ldap3.core.exceptions.LDAPSessionTerminatedByServerError:
                logging.warning("Server connection terminated. Sessions will be reopened on the next command")
                conn.close()
                log_handler.save_history()
            except ldap3.core.exceptions.LDAPInvalidDnError as e:
                logging.error(f"LDAPInvalidDnError: {str(e)}")
                log_handler.save_history()
            except Exception as e:
                if args.stack_trace:
                    log_handler.save_history()
                    raise
                else:
                    logging.error(str(e))

            if args.query:
                conn.close()
                sys.exit(0)

    except ldap3.core.exceptions.LDAPSocketOpenError as e:
        print(str(e))
    except ldap3.core.exceptions.LDAPBindError as e:
        print(str(e))
    except Exception as e:
        if args.stack_trace:
            log_handler.save_history()
            raise
        else:
            logging.error(str(e))

if __name__ == '__main__':
    main()
