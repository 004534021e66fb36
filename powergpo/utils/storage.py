#!/usr/bin/env python3
import os
import ntpath
import shutil
import logging
from io import BytesIO

from impacket.smbconnection import SessionError

class Storage:
	"""
	Minimal file interface used for GPT.INI edits. Paths are whatever the
	concrete storage understands: share-relative for SMB, filesystem paths
	for local storage.
	"""
	def exists(self, path):
		raise NotImplementedError

	def read(self, path):
		raise NotImplementedError

	def write(self, path, data):
		raise NotImplementedError

	def copy(self, source, destination):
		self.write(destination, self.read(source))

	def remove(self, path):
		raise NotImplementedError

class LocalStorage(Storage):
	def __init__(self, root=None):
		self.root = root

	def _path(self, path):
		path = path.replace('\\', os.sep)
		if self.root:
			return os.path.join(self.root, path.lstrip(os.sep))
		return path

	def exists(self, path):
		return os.path.isfile(self._path(path))

	def read(self, path):
		with open(self._path(path), 'rb') as fh:
			return fh.read()

	def write(self, path, data):
		with open(self._path(path), 'wb') as fh:
			fh.write(data)

	def copy(self, source, destination):
		shutil.copyfile(self._path(source), self._path(destination))

	def remove(self, path):
		os.remove(self._path(path))

class SMBStorage(Storage):
	def __init__(self, client, share):
		self.client = client
		self.share = share

	@staticmethod
	def _path(path):
		return ntpath.normpath(path.replace('/', '\\'))

	def exists(self, path):
		try:
			return len(self.client.listPath(self.share, self._path(path))) > 0
		except SessionError as e:
			logging.debug(f"[SMBStorage] {self.share}\\{path}: {e}")
			return False

	def read(self, path):
		fh = BytesIO()
		try:
			self.client.getFile(self.share, self._path(path), fh.write)
			return fh.getvalue()
		finally:
			fh.close()

	def write(self, path, data):
		fh = BytesIO(data)
		try:
			logging.debug(f"[SMBStorage] Writing {len(data)} bytes to {self.share}\\{self._path(path)}")
			self.client.putFile(self.share, self._path(path), fh.read)
		finally:
			fh.close()

	def remove(self, path):
		self.client.deleteFile(self.share, self._path(path))

