#!/usr/bin/env python3
from powergpo.utils.logging import LOG
from powergpo.utils.helpers import IDict
from powergpo.utils.constants import TABLE_FMT_MAP

import datetime
from tabulate import tabulate as table
from io import StringIO
import csv

class FORMATTER:
    def __init__(self, pv_args, config=None):
        self.__newline = '\n'
        self.args = pv_args

        self.config = {
            'attr_spacing': 28,            # Default attribute name spacing
            'date_format': '%m/%d/%Y %H:%M:%S %p',
            'padding': 5,                  # Extra padding for attribute names
            'table_format': 'simple',
            'csv_quote_all': True,
            'show_empty_values': False,
        }

        if config:
            self.config.update(config)

    def _outfile(self):
        return getattr(self.args, 'outfile', None)

    def _emit(self, text):
        if self._outfile():
            LOG.write_to_file(self._outfile(), text)
        print(text)

    def count(self, entries):
        print(len(entries))

    def print_table(self, entries: list, headers: list, align: str = None):
        table_format = getattr(self.args, 'tableview', None) or self.config['table_format']
        table_format = TABLE_FMT_MAP.get(table_format, "simple")

        filtered_entries = [entry for entry in entries if not all(e == '' for e in entry)]
        print()
        if table_format == "csv":
            output = StringIO()
            csv_writer = csv.writer(output, quoting=csv.QUOTE_ALL if self.config['csv_quote_all'] else csv.QUOTE_MINIMAL)
            if headers:
                csv_writer.writerow(headers)
            csv_writer.writerows(filtered_entries)
            table_res = output.getvalue()
            output.close()
        else:
            table_res = table(
                filtered_entries,
                headers,
                numalign="left" if not align else align,
                tablefmt=table_format
            )
        if self._outfile():
            LOG.write_to_file(self._outfile(), table_res)
        print(table_res)
        print()

    def table_view(self, entries):
        if not entries:
            return

        select = getattr(self.args, 'select', None)
        if select and not isinstance(select, int):
            headers = select
        else:
            headers = list(entries[0]["attributes"].keys())

        rows = []
        for entry in entries:
            row = []
            for head in headers:
                val = IDict(entry["attributes"]).get(head)
                row.append(self.format_value_by_type(val))
            rows.append(row)

        self.print_table(entries=rows, headers=headers)

    def print_index(self, entries):
        self.print(entries[0:self.args.select])

    def print_select(self, entries):
        select_attributes = self.args.select
        for entry in entries:
            attributes = IDict(entry['attributes'])
            for attr in select_attributes:
                value = attributes.get(attr)
                if value is None:
                    continue
                value = self.format_value_by_type(value).strip()
                if len(value) == 0 and not self.config['show_empty_values']:
                    continue
                if len(select_attributes) == 1:
                    self._emit(value)
                else:
                    self._emit(f"{attr.ljust(self.get_max_len(select_attributes))}: {value}")
            if len(select_attributes) != 1:
                self._emit("")

    def print(self, entries):
        for entry in entries:
            attributes = entry['attributes']
            max_len = self.get_max_len(list(attributes.keys()))
            have_entry = False
            for attr, value in attributes.items():
                if isinstance(value, list):
                    if len(value) == 0 and not self.config['show_empty_values']:
                        continue
                    value = [self.format_value_by_type(v) for v in value]
                    have_entry = True
                    self._emit(f"{attr.ljust(max_len)}: {self.__newline.ljust(max_len + 3).join(value)}")
                else:
                    value = self.format_value_by_type(value)
                    if value.strip() == "" and not self.config['show_empty_values']:
                        continue
                    have_entry = True
                    self._emit(f"{attr.ljust(max_len)}: {value}")
            if have_entry:
                self._emit("")

    def get_max_len(self, lst):
        if not lst:
            return self.config['padding']
        return len(max(lst, key=len)) + self.config['padding']

    def format_value_by_type(self, value):
        """Format a value based on its data type."""
        if value is None:
            return ""
        elif isinstance(value, bool):
            return str(value)
        elif isinstance(value, datetime.datetime):
            return value.strftime(self.config['date_format'])
        elif isinstance(value, bytes):
            return value.hex()
        elif isinstance(value, list):
            return "\n".join(self.format_value_by_type(v) for v in value)
        else:
            return str(value)
