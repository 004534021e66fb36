#!/usr/bin/env python3
import logging

from powergpo.utils.constants import GPT_INI_BACKUP_SUFFIX

class GPTTransactionError(Exception):
	pass

class GPTTransaction:
	"""
	Backup-guarded rewrite of a single file.

	begin() copies the file aside, write() replaces its content, then the
	caller either commit()s (backup discarded) or rollback()s (file restored
	from the backup, backup discarded). Leaving the context manager without
	a commit rolls back.

	with GPTTransaction(storage, path) as tx:
		tx.write(new_content)
		if directory_update():
			tx.commit()
	"""
	IDLE = 'idle'
	ACTIVE = 'active'
	COMMITTED = 'committed'
	ROLLED_BACK = 'rolled_back'

	def __init__(self, storage, path, backup_suffix=GPT_INI_BACKUP_SUFFIX):
		self.storage = storage
		self.path = path
		self.backup_path = path + backup_suffix
		self.state = self.IDLE

	def begin(self):
		if self.state != self.IDLE:
			raise GPTTransactionError(f"Transaction on {self.path} already {self.state}")

		if not self.storage.exists(self.path):
			raise GPTTransactionError(f"{self.path} not found")

		try:
			self.storage.copy(self.path, self.backup_path)
		except Exception as e:
			self._discard_backup()
			raise GPTTransactionError(f"Failed to back up {self.path} ({e})") from e

		logging.debug(f"[GPTTransaction] Backed up {self.path} to {self.backup_path}")
		self.state = self.ACTIVE
		return self

	def write(self, data):
		self._require_active()
		try:
			self.storage.write(self.path, data)
		except Exception as e:
			logging.debug(f"[GPTTransaction] Write to {self.path} failed, restoring backup")
			self.rollback()
			raise GPTTransactionError(f"Failed to write {self.path} ({e})") from e

	def commit(self):
		self._require_active()
		self._discard_backup()
		self.state = self.COMMITTED
		logging.debug(f"[GPTTransaction] Committed {self.path}")

	def rollback(self):
		self._require_active()
		try:
			self.storage.copy(self.backup_path, self.path)
		except Exception as e:
			# backup is kept so the file can still be recovered by hand
			self.state = self.ROLLED_BACK
			logging.error(f"[GPTTransaction] Failed to restore {self.path}, backup left at {self.backup_path}")
			raise GPTTransactionError(f"Failed to restore {self.path} ({e})") from e
		self._discard_backup()
		self.state = self.ROLLED_BACK
		logging.debug(f"[GPTTransaction] Restored {self.path} from backup")

	def _discard_backup(self):
		try:
			if self.storage.exists(self.backup_path):
				self.storage.remove(self.backup_path)
		except Exception as e:
			logging.warning(f"[GPTTransaction] Failed to remove backup {self.backup_path} ({e})")

	def _require_active(self):
		if self.state != self.ACTIVE:
			raise GPTTransactionError(f"Transaction on {self.path} is {self.state}")

	def __enter__(self):
		return self.begin()

	def __exit__(self, exc_type, exc_value, tb):
		if self.state == self.ACTIVE:
			self.rollback()
		return False
