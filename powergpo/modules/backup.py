#!/usr/bin/env python3
import os
import logging
from xml.etree import ElementTree

from powergpo.utils.helpers import find_file_casefold
from powergpo.utils.constants import (
	MANIFEST_FILE,
	MANIFEST_ENTRY_TAG,
	MANIFEST_ID_FIELD,
	MANIFEST_PATH_FIELD,
)

class ManifestError(Exception):
	pass

def _local_name(tag):
	return tag.split("}")[-1]

class GPOBackup:
	"""
	Reader for a Group Policy backup repository. The repository holds one
	folder per backup, named after the backup ID, and a manifest.xml index:

	<Backups xmlns="http://www.microsoft.com/GroupPolicy/GPOOperations/Manifest">
		<BackupInst>
			<GPOGuid><![CDATA[{...}]]></GPOGuid>
			<GPODisplayName><![CDATA[Default Domain Policy]]></GPODisplayName>
			<ID><![CDATA[{...}]]></ID>
			...
		</BackupInst>
	</Backups>
	"""
	def __init__(self, path):
		self.root, self.manifest = self.resolve_manifest(path)

	@staticmethod
	def resolve_manifest(path):
		"""Return (repository root, manifest path) for a directory or a manifest file"""
		if not path:
			raise ManifestError("No backup path supplied")

		path = os.path.abspath(os.path.expanduser(path))
		if os.path.isdir(path):
			manifest = find_file_casefold(path, MANIFEST_FILE)
			if not manifest:
				raise ManifestError(f"No {MANIFEST_FILE} found in {path}")
			return path, manifest
		elif os.path.isfile(path):
			return os.path.dirname(path), path

		raise ManifestError(f"{path} not found")

	def entries(self):
		try:
			tree = ElementTree.parse(self.manifest)
		except ElementTree.ParseError as e:
			raise ManifestError(f"Failed to parse {self.manifest} ({e})") from e

		records = []
		for element in tree.getroot().iter():
			if _local_name(element.tag) != MANIFEST_ENTRY_TAG:
				continue
			record = {}
			for child in element:
				record[_local_name(child.tag)] = (child.text or '').strip()
			record[MANIFEST_PATH_FIELD] = os.path.join(self.root, record.get(MANIFEST_ID_FIELD, ''))
			records.append(record)

		logging.debug(f"[GPOBackup] {len(records)} backup(s) listed in {self.manifest}")
		return records
