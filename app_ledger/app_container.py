# ==============================================================================
# CONTENEDOR DE DEPENDENCIAS - Inyección de servicios
# ==============================================================================
# Este módulo proporciona una forma centralizada de obtener instancias
# de repositorios y servicios. Facilita:
#   - Inyección de dependencias
#   - Testing (reloj y directorio de datos configurables)
#   - Migración gradual (cambiar repos sin tocar servicios)
#
# Todos los repositorios comparten un mismo JsonStore: así las transacciones
# de un servicio abarcan cualquier tabla.
# ==============================================================================

import os
from datetime import datetime
from typing import Callable, Optional

# ═══════════════════════════════════════════════════════════════════════════════
# REPOSITORIOS - Capa de persistencia
# ═══════════════════════════════════════════════════════════════════════════════
from app_ledger.models import utcnow
from app_ledger.repositories import (
    AuditRepository,
    CustomerRepository,
    JsonStore,
    LoanRepository,
    OrderRepository,
    PartnerRepository,
    ProductRepository,
)

# ═══════════════════════════════════════════════════════════════════════════════
# SERVICIOS - Capa de lógica de negocio
# ═══════════════════════════════════════════════════════════════════════════════
from app_ledger.services import (
    AuditService,
    CatalogService,
    FulfillmentService,
    LoanService,
    OrderService,
    RegistryService,
    ReportService,
    StatsService,
)


LEDGER_FILENAME = 'ledger.json'


class AppContainer:
    """
    Contenedor de dependencias de la aplicación.

    Implementa el patrón Singleton para asegurar una única instancia
    de cada repositorio y servicio.

    Uso:
        container = AppContainer(data_dir='/path/to/data')
        order_service = container.order_service
        fulfillment_service = container.fulfillment_service
    """

    _instance: Optional['AppContainer'] = None

    def __new__(cls, *args, **kwargs):
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(
        self,
        data_dir: Optional[str] = None,
        lock_timeout: float = 5.0,
        dashboard_window_days: int = 60,
        clock: Callable[[], datetime] = utcnow
    ):
        """
        Inicializa el contenedor.

        Args:
            data_dir: Directorio donde vive ledger.json
            lock_timeout: Espera máxima por el lock del almacén (segundos)
            dashboard_window_days: Ventana de entregados del panel
            clock: Reloj compartido por todos los servicios
        """
        if self._initialized:
            return

        self._data_dir = data_dir or os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data')
        self._lock_timeout = lock_timeout
        self._dashboard_window_days = dashboard_window_days
        self._clock = clock

        # Repositorios y servicios (lazy loading)
        self._reset_members()
        self._initialized = True

    def _reset_members(self) -> None:
        self._store: Optional[JsonStore] = None
        self._product_repo: Optional[ProductRepository] = None
        self._customer_repo: Optional[CustomerRepository] = None
        self._partner_repo: Optional[PartnerRepository] = None
        self._order_repo: Optional[OrderRepository] = None
        self._loan_repo: Optional[LoanRepository] = None
        self._audit_repo: Optional[AuditRepository] = None

        self._audit_service: Optional[AuditService] = None
        self._catalog_service: Optional[CatalogService] = None
        self._registry_service: Optional[RegistryService] = None
        self._order_service: Optional[OrderService] = None
        self._fulfillment_service: Optional[FulfillmentService] = None
        self._loan_service: Optional[LoanService] = None
        self._stats_service: Optional[StatsService] = None
        self._report_service: Optional[ReportService] = None

    @property
    def data_dir(self) -> str:
        return self._data_dir

    # =========================================================================
    # REPOSITORIOS
    # =========================================================================

    @property
    def store(self) -> JsonStore:
        """Almacén compartido (singleton)."""
        if self._store is None:
            self._store = JsonStore(os.path.join(self._data_dir, LEDGER_FILENAME), self._lock_timeout)
        return self._store

    @property
    def product_repo(self) -> ProductRepository:
        if self._product_repo is None:
            self._product_repo = ProductRepository(self.store)
        return self._product_repo

    @property
    def customer_repo(self) -> CustomerRepository:
        if self._customer_repo is None:
            self._customer_repo = CustomerRepository(self.store)
        return self._customer_repo

    @property
    def partner_repo(self) -> PartnerRepository:
        if self._partner_repo is None:
            self._partner_repo = PartnerRepository(self.store)
        return self._partner_repo

    @property
    def order_repo(self) -> OrderRepository:
        if self._order_repo is None:
            self._order_repo = OrderRepository(self.store)
        return self._order_repo

    @property
    def loan_repo(self) -> LoanRepository:
        if self._loan_repo is None:
            self._loan_repo = LoanRepository(self.store)
        return self._loan_repo

    @property
    def audit_repo(self) -> AuditRepository:
        if self._audit_repo is None:
            self._audit_repo = AuditRepository(self.store)
        return self._audit_repo

    # =========================================================================
    # SERVICIOS
    # =========================================================================

    @property
    def audit_service(self) -> AuditService:
        """Servicio de auditoría (singleton)."""
        if self._audit_service is None:
            self._audit_service = AuditService(self.audit_repo, self._clock)
        return self._audit_service

    @property
    def catalog_service(self) -> CatalogService:
        """Servicio de catálogo (singleton)."""
        if self._catalog_service is None:
            self._catalog_service = CatalogService(
                self.store,
                self.product_repo,
                self.order_repo,
                self.loan_repo,
                self.audit_service,
                self._clock
            )
        return self._catalog_service

    @property
    def registry_service(self) -> RegistryService:
        """Servicio de clientes y socios (singleton)."""
        if self._registry_service is None:
            self._registry_service = RegistryService(
                self.store,
                self.customer_repo,
                self.partner_repo,
                self.order_repo,
                self.loan_repo,
                self.audit_service
            )
        return self._registry_service

    @property
    def order_service(self) -> OrderService:
        """Servicio de pedidos (singleton)."""
        if self._order_service is None:
            self._order_service = OrderService(
                self.store,
                self.order_repo,
                self.product_repo,
                self.customer_repo,
                self.audit_service,
                self._clock
            )
        return self._order_service

    @property
    def fulfillment_service(self) -> FulfillmentService:
        """Servicio de cumplimiento (singleton)."""
        if self._fulfillment_service is None:
            self._fulfillment_service = FulfillmentService(
                self.store,
                self.order_repo,
                self.catalog_service,
                self.audit_service,
                self._clock
            )
        return self._fulfillment_service

    @property
    def loan_service(self) -> LoanService:
        """Servicio de préstamos (singleton)."""
        if self._loan_service is None:
            self._loan_service = LoanService(
                self.store,
                self.loan_repo,
                self.partner_repo,
                self.catalog_service,
                self.audit_service,
                self._clock
            )
        return self._loan_service

    @property
    def stats_service(self) -> StatsService:
        """Servicio de estadísticas (singleton)."""
        if self._stats_service is None:
            self._stats_service = StatsService(
                self.product_repo,
                self.order_repo,
                self.loan_repo,
                self.customer_repo,
                self.partner_repo,
                self._clock,
                self._dashboard_window_days
            )
        return self._stats_service

    @property
    def report_service(self) -> ReportService:
        """Servicio de reportes (singleton)."""
        if self._report_service is None:
            self._report_service = ReportService(
                self.product_repo,
                self.order_repo,
                self.loan_repo,
                self.partner_repo
            )
        return self._report_service

    # =========================================================================
    # UTILIDADES
    # =========================================================================

    def reset(self) -> None:
        """
        Reinicia todas las instancias.
        Útil para testing o para recargar datos.
        """
        self._reset_members()

    @classmethod
    def get_instance(cls, data_dir: Optional[str] = None, **options) -> 'AppContainer':
        """
        Obtiene la instancia singleton del contenedor.

        Args:
            data_dir: Directorio de datos (solo se usa en primera llamada)
            options: lock_timeout, dashboard_window_days, clock

        Returns:
            Instancia del contenedor
        """
        if cls._instance is None:
            return cls(data_dir, **options)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Elimina la instancia singleton (útil para tests)."""
        if cls._instance is not None:
            cls._instance.reset()
            cls._instance = None


# Función helper para obtener el contenedor global
def get_container(data_dir: Optional[str] = None, **options) -> AppContainer:
    """
    Obtiene el contenedor de dependencias global.

    Args:
        data_dir: Directorio de datos del ledger

    Returns:
        Instancia del contenedor
    """
    return AppContainer.get_instance(data_dir, **options)
