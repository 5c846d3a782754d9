"""JobRegistryPort: hexagonal port for the table of tracked jobs.

Unlike a persistence port, every operation is synchronous: the registry is
shared in-process state and callers must never observe a half-applied update.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from tunedeck.core.models.job import Job, JobPatch

Snapshot = List[Job]
Subscriber = Callable[[Snapshot], None]


class JobRegistryPort(ABC):
	"""Port abstraction for the authoritative job table."""

	@abstractmethod
	def create(self, job: Job) -> str:
		"""Insert a job as pending with empty logs and no result; return its id."""
		raise NotImplementedError

	@abstractmethod
	def get(self, job_id: str) -> Optional[Job]:
		"""Return a copy of the job or None if not found."""
		raise NotImplementedError

	@abstractmethod
	def update(self, job_id: str, patch: JobPatch) -> Job:
		"""Apply a partial update and return the new snapshot.

		A shorter `logs` list and a second `result` are ignored; an illegal
		status change raises InvalidTransitionError.
		"""
		raise NotImplementedError

	@abstractmethod
	def list(self) -> Snapshot:
		"""Return all jobs in insertion order."""
		raise NotImplementedError

	@abstractmethod
	def subscribe(self, callback: Subscriber) -> Callable[[], None]:
		"""Call `callback` with a fresh snapshot after every change; return an unsubscribe function."""
		raise NotImplementedError
