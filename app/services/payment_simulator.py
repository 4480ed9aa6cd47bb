"""Simulação de aprovação automática de PIX no modo mock.

Cada simulação é um ``threading.Timer`` de disparo único. O simulador é
criado no startup da aplicação e encerrado no shutdown; nada fica em
variáveis globais de módulo.
"""
import logging
import random
from dataclasses import dataclass
from datetime import datetime
from threading import Lock, Timer
from typing import Callable, Dict, List, Optional

from app.services.payment_gateway import MockPaymentGateway


logger = logging.getLogger(__name__)

# (external_id, status do gateway) -> aplica no banco
SettleCallback = Callable[[str, str], None]


@dataclass
class Simulation:
    external_id: str
    appointment_id: int
    delay_seconds: float
    scheduled_at: datetime


class PaymentSimulator:
    def __init__(
        self,
        gateway: MockPaymentGateway,
        settle: SettleCallback,
        approval_rate: float = 0.9,
        min_delay: float = 5.0,
        max_delay: float = 10.0,
        rng: Optional[random.Random] = None,
    ):
        self.gateway = gateway
        self.settle = settle
        self.approval_rate = approval_rate
        self.min_delay = min_delay
        self.max_delay = max_delay
        self.rng = rng or random.Random()

        self._timers: Dict[str, Timer] = {}
        self._simulations: Dict[str, Simulation] = {}
        self._lock = Lock()
        self._closed = False

    def start(self, external_id: str, appointment_id: int) -> Simulation:
        # reinicia se já havia uma simulação para o mesmo pagamento
        self.stop(external_id)

        delay = self.rng.uniform(self.min_delay, self.max_delay)
        simulation = Simulation(external_id, appointment_id, delay, datetime.utcnow())

        timer = Timer(delay, self._fire, args=(external_id,))
        timer.daemon = True

        with self._lock:
            if self._closed:
                raise RuntimeError("simulador encerrado")
            self._timers[external_id] = timer
            self._simulations[external_id] = simulation
        timer.start()

        logger.info("[MOCK_SIM] %s agendado para %.0fs (agendamento %s)", external_id, delay, appointment_id)
        return simulation

    def stop(self, external_id: str) -> bool:
        with self._lock:
            timer = self._timers.pop(external_id, None)
            self._simulations.pop(external_id, None)
        if timer is None:
            return False
        timer.cancel()
        logger.info("[MOCK_SIM] simulação cancelada para %s", external_id)
        return True

    def active(self) -> List[Simulation]:
        with self._lock:
            return list(self._simulations.values())

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
            timers = list(self._timers.values())
            self._timers.clear()
            self._simulations.clear()
        for timer in timers:
            timer.cancel()
        if timers:
            logger.info("[MOCK_SIM] %d simulações canceladas no shutdown", len(timers))

    def _fire(self, external_id: str) -> None:
        with self._lock:
            if self._timers.pop(external_id, None) is None:
                return
            self._simulations.pop(external_id, None)

        status = "approved" if self.rng.random() < self.approval_rate else "rejected"
        self.gateway.set_status(external_id, status)
        logger.info("[MOCK_SIM] %s -> %s", external_id, status)

        try:
            self.settle(external_id, status)
        except Exception:
            # thread do timer: não há para onde propagar
            logger.exception("[MOCK_SIM] erro ao aplicar status de %s", external_id)
