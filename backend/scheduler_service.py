"""
Scheduler pour les tâches automatiques Abeille Réunion
- Passage d'année (31/12 23:59, 01/01 00:00, 01/01 00:01)
- Publication des articles programmés (chaque minute)
- Envoi des communications programmées (chaque minute)
- Export UNAF aux dates du calendrier (08:00)
- Libération des envois interrompus (toutes les 10 minutes)
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from config import now_iso, SCHEDULER_TIMEZONE
from services.articles import publish_due_articles
from services.communication_state_machine import (
    envoyer_communication,
    release_stale_claims,
    CommunicationStateError,
    NoRecipientsError,
    PROGRAMME,
)
from services.parametres import (
    init_nouvelle_annee,
    expire_adhesions_annee_precedente,
    update_annee_en_cours,
)
from services.recipient_resolver import RecipientResolver
from services.unaf_export import run_export

logger = logging.getLogger("scheduler")


class TaskScheduler:
    """Gestionnaire de tâches planifiées"""

    def __init__(self, db, dispatcher, resolver: Optional[RecipientResolver] = None, timezone: str = SCHEDULER_TIMEZONE):
        self.db = db
        self.dispatcher = dispatcher
        self.resolver = resolver or RecipientResolver(db)
        self.timezone = timezone
        self.scheduler = AsyncIOScheduler(timezone=timezone)

    def start(self):
        """Démarre le scheduler avec toutes les tâches"""
        # Fermeture de l'année N et création de N+1
        self.scheduler.add_job(
            self.job_init_nouvelle_annee,
            CronTrigger(month=12, day=31, hour=23, minute=59),
            id="init_nouvelle_annee",
            name="Initialisation nouvelle année",
            replace_existing=True
        )

        self.scheduler.add_job(
            self.job_expire_adhesions,
            CronTrigger(month=1, day=1, hour=0, minute=0),
            id="expire_adhesions",
            name="Expiration des adhésions N-1",
            replace_existing=True
        )

        self.scheduler.add_job(
            self.job_update_annee_en_cours,
            CronTrigger(month=1, day=1, hour=0, minute=1),
            id="update_annee_en_cours",
            name="Bascule année en cours",
            replace_existing=True
        )

        self.scheduler.add_job(
            self.job_publish_scheduled_articles,
            CronTrigger(minute="*"),
            id="publish_scheduled_articles",
            name="Publication articles programmés",
            replace_existing=True
        )

        self.scheduler.add_job(
            self.job_send_scheduled_communications,
            CronTrigger(minute="*"),
            id="send_scheduled_communications",
            name="Envoi communications programmées",
            replace_existing=True
        )

        self.scheduler.add_job(
            self.job_unaf_export_check,
            CronTrigger(hour=8, minute=0),
            id="unaf_export_check",
            name="Export UNAF",
            replace_existing=True
        )

        self.scheduler.add_job(
            self.job_release_stale_sends,
            CronTrigger(minute="*/10"),
            id="release_stale_sends",
            name="Libération envois interrompus",
            replace_existing=True
        )

        self.scheduler.start()
        logger.info(f"Scheduler démarré avec succès ({self.timezone})")

    def stop(self):
        """Arrête le scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler arrêté")

    def local_now(self) -> datetime:
        return datetime.now(ZoneInfo(self.timezone))

    # ==================== TÂCHES PLANIFIÉES ====================

    async def job_init_nouvelle_annee(self):
        try:
            annee = self.local_now().year
            logger.info(f"🔄 Initialisation des paramètres pour l'année {annee + 1}")
            await init_nouvelle_annee(self.db, annee)
        except Exception as e:
            logger.error(f"❌ Erreur initialisation nouvelle année: {str(e)}")

    async def job_expire_adhesions(self):
        try:
            await expire_adhesions_annee_precedente(self.db, self.local_now().year)
        except Exception as e:
            logger.error(f"❌ Erreur expiration adhésions: {str(e)}")

    async def job_update_annee_en_cours(self):
        try:
            await update_annee_en_cours(self.db, self.local_now().year)
        except Exception as e:
            logger.error(f"❌ Erreur bascule année en cours: {str(e)}")

    async def job_publish_scheduled_articles(self):
        try:
            await publish_due_articles(self.db)
        except Exception as e:
            logger.error(f"❌ Erreur publication articles programmés: {str(e)}")

    async def job_send_scheduled_communications(self) -> List[Dict]:
        """
        Envoie les communications programmées échues.
        Chaque communication est réservée atomiquement: un envoi manuel
        concurrent ou un autre passage du scheduler ne peut pas la doubler.
        """
        envoyees = []
        try:
            now = now_iso()
            dues = await self.db.communications.find(
                {"statut": PROGRAMME, "dateProgrammee": {"$lte": now}},
                {"_id": 0, "id": 1, "titre": 1}
            ).to_list(None)
        except Exception as e:
            logger.error(f"❌ Erreur recherche communications programmées: {str(e)}")
            return envoyees

        if dues:
            logger.info(f"📬 {len(dues)} communication(s) programmée(s) à envoyer")

        for due in dues:
            try:
                communication = await envoyer_communication(
                    self.db,
                    due["id"],
                    self.resolver,
                    self.dispatcher,
                    from_statut=PROGRAMME,
                    extra_filter={"dateProgrammee": {"$lte": now}},
                )
                envoyees.append(communication)
            except CommunicationStateError as e:
                logger.info(f"ℹ️ Communication {due['id']} ignorée: {str(e)}")
            except NoRecipientsError:
                logger.warning(f"⚠️ Communication \"{due.get('titre')}\": aucun destinataire, repassée en brouillon")
            except Exception as e:
                logger.error(f"❌ Erreur envoi communication {due['id']}: {str(e)}")

        return envoyees

    async def job_release_stale_sends(self):
        try:
            liberees = await release_stale_claims(self.db)
            if liberees:
                logger.warning(f"⚠️ {len(liberees)} envoi(s) interrompu(s) repassé(s) en brouillon")
        except Exception as e:
            logger.error(f"❌ Erreur libération envois interrompus: {str(e)}")

    async def job_unaf_export_check(self):
        try:
            jour = self.local_now().date()
            if await run_export(self.db, jour) is None:
                logger.info(f"Export UNAF: rien à faire le {jour.isoformat()}")
        except Exception as e:
            logger.error(f"❌ Erreur export UNAF: {str(e)}")
