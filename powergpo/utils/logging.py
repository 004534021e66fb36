#!/usr/bin/env python3
import os
import re
import logging
from datetime import date
from sys import platform
if platform == "linux" or platform == "linux2":
    import gnureadline as readline
else:
    import readline

# messages from the shell verbs start with their name, e.g. "[Get-GPLink] ..."
COMMAND_TAG = re.compile(r'^\[(?P<command>[A-Za-z]+-[A-Za-z]+)\]\s*')

FILE_FORMAT = '[%(asctime)s] %(levelname)-8s %(command)-18s %(message)s'
CONSOLE_FORMAT = '[%(asctime)s] %(message)s'
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

def default_root():
    if os.name == 'nt':
        return os.path.join(os.environ.get('APPDATA', os.path.expanduser('~')), "powergpo")
    return os.path.join(os.path.expanduser('~'), ".powergpo")

def split_command(message):
    """Return (command, rest) for a tagged message, ('-', message) otherwise"""
    match = COMMAND_TAG.match(message)
    if not match:
        return '-', message
    return match.group('command'), message[match.end():]

class CommandFormatter(logging.Formatter):
    """Log file lines with the shell command in its own column"""
    def __init__(self, fmt=FILE_FORMAT):
        super().__init__(fmt, DATE_FORMAT)

    def formatMessage(self, record):
        record = logging.makeLogRecord(record.__dict__)
        record.command, record.message = split_command(record.message)
        return super().formatMessage(record)

class CustomFormatter(logging.Formatter):
    """Console lines colored by level, with the command tag in bold"""
    grey = '\033[2;37m'
    green = '\033[92m'
    yellow = '\033[93m'
    red = '\033[91m'
    bold_red = '\x1b[31;1m'
    bold = '\033[1m'
    normal = '\033[22m'
    reset = '\033[0m'

    def __init__(self, fmt=CONSOLE_FORMAT):
        super().__init__(fmt, DATE_FORMAT)
        self.colors = {
            logging.DEBUG: self.grey,
            logging.INFO: self.green,
            logging.WARNING: self.yellow,
            logging.ERROR: self.red,
            logging.CRITICAL: self.bold_red,
        }

    def formatMessage(self, record):
        command, rest = split_command(record.message)
        if command != '-':
            record = logging.makeLogRecord(record.__dict__)
            record.message = f"{self.bold}[{command}]{self.normal} {rest}"
        return self.colors.get(record.levelno, '') + super().formatMessage(record) + self.reset

class LOG:
    """
    Session logging for one target. The dated log file and the shell
    history both live in <root>/logs/<domain-user-target>/.
    """
    def __init__(self, folder_name, root_folder=None):
        self.root_folder = root_folder or default_root()
        self.logs_folder = os.path.join(self.root_folder, "logs", folder_name.lower())
        os.makedirs(self.logs_folder, exist_ok=True)

        self.log_file = os.path.join(self.logs_folder, "%s.log" % date.today())
        self.history_file = os.path.join(self.logs_folder, ".powergpo_history")
        self.handlers = []
        self.load_history()

    def load_history(self):
        if not os.path.exists(self.history_file):
            return
        try:
            readline.read_history_file(self.history_file)
        except OSError as e:
            logging.error(f"Error reading history file {self.history_file}: {e}")

    def save_history(self):
        try:
            readline.write_history_file(self.history_file)
        except OSError as e:
            logging.error(f"Error writing history file {self.history_file}: {e}")

    def setup_logger(self, level=logging.INFO):
        if isinstance(level, str):
            level = getattr(logging, level.upper(), logging.INFO)

        logger = logging.getLogger()
        logger.setLevel(logging.DEBUG)

        file_handler = logging.FileHandler(self.log_file, 'a')
        file_handler.setFormatter(CommandFormatter())

        stdout_handler = logging.StreamHandler()
        stdout_handler.setLevel(level)
        stdout_handler.setFormatter(CustomFormatter())

        for handler in (file_handler, stdout_handler):
            logger.addHandler(handler)
            self.handlers.append(handler)

        logging.debug("Logging directory is set to %s" % (self.logs_folder))
        return logger

    def close(self):
        logger = logging.getLogger()
        for handler in self.handlers:
            logger.removeHandler(handler)
            handler.close()
        self.handlers = []

    @staticmethod
    def write_to_file(file_name, text):
        """Append text to an -OutFile target"""
        with open(os.path.expanduser(file_name), "a") as f:
            f.write(text + "\n")
