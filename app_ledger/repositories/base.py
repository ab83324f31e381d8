# ==============================================================================
# REPOSITORIO BASE - Almacén JSON transaccional
# ==============================================================================
# Todo el ledger vive en un único documento JSON (ledger.json):
#
#   {
#     "products":    {id: {...}},
#     "customers":   {id: {...}},
#     "partners":    {id: {...}},
#     "orders":      {id: {...}},
#     "order_lines": {id: {...}},
#     "loans":       {id: {...}},
#     "audit":       [{...}, ...]
#   }
#
# Un solo documento permite que varias tablas cambien juntas: JsonStore
# ofrece transaction(), que lee el documento, deja que el bloque lo modifique
# y lo escribe de forma atómica al salir. Si el bloque lanza una excepción,
# nada se escribe (rollback). Las transacciones anidadas en el mismo hilo
# reutilizan el documento de la transacción externa.
#
# EXCLUSIÓN:
# - Entre hilos: threading.RLock
# - Entre procesos (varios workers de gunicorn): FileLock sobre ledger.json.lock
# Ambos se toman en la operación más externa y se sueltan al terminarla.
# ==============================================================================

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Type

from filelock import FileLock, Timeout

from app_ledger.errors import LedgerTimeoutError

logger = logging.getLogger(__name__)


class JsonStore:
    """
    Almacén de datos en un archivo JSON con escritura atómica.

    Al migrar a una base de datos:
    - transaction() se convierte en BEGIN/COMMIT/ROLLBACK
    - los locks se reemplazan por el aislamiento de la BD
    """

    TABLES = ('products', 'customers', 'partners', 'orders', 'order_lines', 'loans')
    LIST_TABLES = ('audit',)

    def __init__(self, file_path: str, lock_timeout: float = 5.0):
        """
        Inicializa el almacén.

        Args:
            file_path: Ruta absoluta al archivo JSON de datos
            lock_timeout: Segundos máximos de espera por el lock
        """
        self.file_path = file_path
        self.lock_timeout = lock_timeout
        self._lock = threading.RLock()
        # Profundidad de anidamiento; solo se modifica con _lock tomado
        self._depth = 0
        self._local = threading.local()
        directory = os.path.dirname(self.file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._file_lock = FileLock(self.file_path + '.lock')
        self._ensure_file_exists()

    def _ensure_file_exists(self) -> None:
        """Crea el archivo con datos vacíos si no existe."""
        with self._locked():
            if not os.path.exists(self.file_path):
                self._write_raw(self._empty_data())

    def _empty_data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {table: {} for table in self.TABLES}
        for table in self.LIST_TABLES:
            data[table] = []
        return data

    def _read_raw(self) -> Dict[str, Any]:
        """
        Lee los datos crudos del archivo JSON.

        Returns:
            Documento completo con todas las tablas presentes

        Raises:
            json.JSONDecodeError: Si el archivo tiene JSON inválido
        """
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return self._empty_data()
        except json.JSONDecodeError:
            # No se devuelve un documento vacío: la siguiente escritura
            # borraría el ledger completo.
            logger.error("Archivo de datos corrupto: %s", self.file_path)
            raise
        for table, empty in self._empty_data().items():
            data.setdefault(table, empty)
        return data

    def _write_raw(self, data: Dict[str, Any]) -> None:
        """
        Escribe datos al archivo JSON.

        Args:
            data: Documento a serializar y escribir
        """
        # Archivo temporal propio en el mismo directorio: os.replace es atómico
        # y dos escritores nunca comparten el mismo temporal
        directory = os.path.dirname(self.file_path) or '.'
        fd, temp_path = tempfile.mkstemp(
            dir=directory, prefix=os.path.basename(self.file_path) + '.', suffix='.tmp'
        )
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(temp_path, self.file_path)
        except Exception:
            # Limpiar archivo temporal si algo falla
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise LedgerTimeoutError(
                f"Almacenamiento ocupado: no se obtuvo el lock en {self.lock_timeout}s"
            )
        try:
            if self._depth == 0:
                try:
                    self._file_lock.acquire(timeout=self.lock_timeout)
                except Timeout:
                    raise LedgerTimeoutError(
                        f"Almacenamiento ocupado por otro proceso: no se obtuvo el lock en {self.lock_timeout}s"
                    )
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._file_lock.release()
        finally:
            self._lock.release()

    @property
    def in_transaction(self) -> bool:
        return getattr(self._local, 'data', None) is not None

    @contextmanager
    def transaction(self) -> Iterator[Dict[str, Any]]:
        """
        Abre una transacción de lectura/escritura.

        Uso:
            with store.transaction() as data:
                data['products'][pid]['quantity'] -= 1

        Yields:
            Documento mutable; se persiste solo si el bloque termina sin error
        """
        with self._locked():
            current = getattr(self._local, 'data', None)
            if current is not None:
                yield current
                return
            data = self._read_raw()
            self._local.data = data
            try:
                yield data
                self._write_raw(data)
            finally:
                self._local.data = None

    @contextmanager
    def read(self) -> Iterator[Dict[str, Any]]:
        """Acceso de solo lectura: ve la transacción en curso si existe."""
        with self._locked():
            current = getattr(self._local, 'data', None)
            yield current if current is not None else self._read_raw()


class TableRepository:
    """
    Repositorio base para una tabla del documento.
    Cada fila es un diccionario con 'id' y 'account_id'; toda consulta se
    filtra por cuenta y una fila de otra cuenta se trata como inexistente.

    Las subclases definen:
        table: Nombre de la tabla en el documento
        entity_cls: Dataclass con to_dict()/from_dict()
    """

    table: str = ''
    entity_cls: Type[Any] = dict

    def __init__(self, store: JsonStore):
        """
        Args:
            store: Almacén compartido por todos los repositorios
        """
        self.store = store

    def _rows(self, data: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
        return data.setdefault(self.table, {})

    def _owned_row(self, data: Dict[str, Any], account_id: str, record_id: Any) -> Optional[Dict[str, Any]]:
        row = self._rows(data).get(record_id)
        if row is None or row.get('account_id') != account_id:
            return None
        return row

    def _to_entity(self, row: Dict[str, Any]) -> Any:
        return self.entity_cls.from_dict(row)

    def _to_row(self, entity: Any) -> Dict[str, Any]:
        return entity.to_dict()

    # =========================================================================
    # LECTURA
    # =========================================================================

    def get(self, account_id: str, record_id: Any) -> Optional[Any]:
        """
        Obtiene un registro por su ID dentro de la cuenta.

        Returns:
            Entidad o None si no existe o pertenece a otra cuenta
        """
        with self.store.read() as data:
            row = self._owned_row(data, account_id, record_id)
            return self._to_entity(row) if row is not None else None

    def list(
        self,
        account_id: str,
        predicate: Optional[Callable[[Dict[str, Any]], bool]] = None
    ) -> List[Any]:
        """
        Lista los registros de la cuenta.

        Args:
            account_id: Cuenta dueña
            predicate: Filtro opcional sobre la fila cruda
        """
        with self.store.read() as data:
            return [
                self._to_entity(row)
                for row in self._rows(data).values()
                if row.get('account_id') == account_id and (predicate is None or predicate(row))
            ]

    def find_all_by(self, account_id: str, field: str, value: Any) -> List[Any]:
        """Busca todos los registros de la cuenta con field == value."""
        return self.list(account_id, lambda row: row.get(field) == value)

    def count_by(self, account_id: str, field: str, value: Any) -> int:
        with self.store.read() as data:
            return sum(
                1 for row in self._rows(data).values()
                if row.get('account_id') == account_id and row.get(field) == value
            )

    # =========================================================================
    # ESCRITURA
    # =========================================================================

    def insert(self, entity: Any) -> Any:
        """Inserta una entidad nueva (su id no debe existir)."""
        with self.store.transaction() as data:
            rows = self._rows(data)
            if entity.id in rows:
                raise KeyError(f"{self.table}: id duplicado {entity.id}")
            rows[entity.id] = self._to_row(entity)
        return entity

    def update(self, account_id: str, record_id: Any, changes: Dict[str, Any]) -> Optional[Any]:
        """
        Actualiza campos de un registro.

        Args:
            changes: Campos ya serializados (strings para Decimal/fechas)

        Returns:
            Entidad actualizada o None si no existía en la cuenta
        """
        with self.store.transaction() as data:
            row = self._owned_row(data, account_id, record_id)
            if row is None:
                return None
            row.update(changes)
            return self._to_entity(row)

    def delete(self, account_id: str, record_id: Any) -> Optional[Any]:
        """
        Elimina un registro.

        Returns:
            Entidad eliminada o None si no existía en la cuenta
        """
        with self.store.transaction() as data:
            row = self._owned_row(data, account_id, record_id)
            if row is None:
                return None
            del self._rows(data)[record_id]
            return self._to_entity(row)

    def delete_where(self, account_id: str, field: str, value: Any) -> int:
        """
        Elimina todos los registros de la cuenta con field == value.

        Returns:
            Cantidad de registros eliminados
        """
        with self.store.transaction() as data:
            rows = self._rows(data)
            doomed = [
                rid for rid, row in rows.items()
                if row.get('account_id') == account_id and row.get(field) == value
            ]
            for rid in doomed:
                del rows[rid]
            return len(doomed)
