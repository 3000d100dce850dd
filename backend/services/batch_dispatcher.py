"""
Abeille Réunion - Envoi d'une communication par lots

- Lots de taille fixe (EMAIL_BATCH_SIZE, 10 par défaut)
- Envois d'un lot en parallèle, on attend TOUS les résultats du lot
- Pause (EMAIL_BATCH_DELAY_MS) entre deux lots, pas après le dernier
- Un échec n'interrompt rien: compté et journalisé
- Seules les 10 dernières erreurs sont conservées (les compteurs restent exacts)

Aucune écriture en base: l'appelant persiste le résultat.
"""

import asyncio
import logging
from typing import Dict, List

from config import now_iso, EMAIL_BATCH_SIZE, EMAIL_BATCH_DELAY_MS
from models.communication import MAX_ERREURS_CONSERVEES

logger = logging.getLogger("batch_dispatcher")


def chunk(items: List, size: int) -> List[List]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchDispatcher:
    """
    sender: objet exposant `async send_communication(destinataire, communication)`
    sleep: coroutine de pause (injectable pour les tests)
    """

    def __init__(
        self,
        sender,
        batch_size: int = EMAIL_BATCH_SIZE,
        batch_delay_ms: int = EMAIL_BATCH_DELAY_MS,
        sleep=asyncio.sleep
    ):
        if batch_size < 1:
            raise ValueError("batch_size doit être >= 1")
        self.sender = sender
        self.batch_size = batch_size
        self.batch_delay_ms = batch_delay_ms
        self._sleep = sleep

    async def dispatch(self, communication: dict, destinataires: List[Dict]) -> Dict:
        """
        Returns:
            {"emailsEnvoyes": int, "emailsEchoues": int, "erreurs": [{email, erreur, date}]}
        """
        envoyes = 0
        echoues = 0
        erreurs = []

        lots = chunk(destinataires, self.batch_size)
        logger.info(
            f"📧 Communication \"{communication.get('titre')}\" - "
            f"envoi à {len(destinataires)} adhérent(s) en {len(lots)} lot(s)"
        )

        for numero, lot in enumerate(lots, start=1):
            resultats = await asyncio.gather(
                *(self.sender.send_communication(user, communication) for user in lot),
                return_exceptions=True
            )

            for user, resultat in zip(lot, resultats):
                if isinstance(resultat, Exception):
                    echoues += 1
                    erreurs.append({
                        "email": user.get("email"),
                        "erreur": str(resultat) or resultat.__class__.__name__,
                        "date": now_iso(),
                    })
                    logger.warning(f"   ❌ Échec envoi à {user.get('email')}: {resultat}")
                else:
                    envoyes += 1

            logger.info(
                f"📧 Lot {numero}/{len(lots)}: {len(lot)} email(s) | "
                f"total ✅ {envoyes} ❌ {echoues}"
            )

            if numero < len(lots):
                await self._sleep(self.batch_delay_ms / 1000)

        logger.info(f"🎉 Envoi terminé: {envoyes}/{len(destinataires)} emails envoyés")

        return {
            "emailsEnvoyes": envoyes,
            "emailsEchoues": echoues,
            "erreurs": erreurs[-MAX_ERREURS_CONSERVEES:],
        }
