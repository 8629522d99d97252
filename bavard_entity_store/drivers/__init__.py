"""
Storage drivers. :class:`InMemoryStorageDriver` needs no extra dependencies. The Firestore driver lives in
:mod:`bavard_entity_store.drivers.firestore` and requires the ``gcp`` extra:

.. code-block::

   pip install bavard-entity-store[gcp]
"""
from bavard_entity_store.drivers.base import StorageDriver
from bavard_entity_store.drivers.memory import InMemoryStorageDriver
