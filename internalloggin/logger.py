# Filosofia: "O que não está no log, não aconteceu."

import logging
import os
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler

# Pasta de logs internos; NETPRISM_LOG_DIR permite redirecionar (ex: container read-only)
LOG_DIR = Path(os.getenv("NETPRISM_LOG_DIR", Path(__file__).parent / "internallogs"))

_CONSOLE_LEVEL = os.getenv("NETPRISM_LOG_LEVEL", "INFO").upper()


def setup_logger(name: str = "NetPrism") -> logging.Logger:
    """
    Configura um logger nomeado do NetPrism.

    Cada módulo (ou coletor) recebe o seu próprio logger, o que permite
    filtrar os arquivos de log por domínio de coleta ou por serviço.

    Args:
        name (str): O nome do logger. Default é "NetPrism".

    Returns:
        logging.Logger: O logger configurado.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # Evita duplicidade de handlers se o logger for inicializado mais de uma vez
    if not logger.handlers:
        formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler.setLevel(getattr(logging, _CONSOLE_LEVEL, logging.INFO))
        logger.addHandler(console_handler)

        # Sem permissão de escrita o NetPrism segue apenas com o console
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=LOG_DIR / f"{name}.log",
                maxBytes=5 * 1024 * 1024,  # 5 MB
                backupCount=13,
                encoding='utf-8'
            )
        except OSError as exc:
            logger.warning("Log em arquivo desabilitado (%s): %s", LOG_DIR, exc)
        else:
            file_handler.setFormatter(formatter)
            file_handler.setLevel(logging.DEBUG)
            logger.addHandler(file_handler)
    return logger


# Instância única para ser importada em outros módulos
logger = setup_logger()
