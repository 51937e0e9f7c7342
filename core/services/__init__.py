"""
core/services/
Camada de serviços do NetPrism.

Contém lógica agnóstica à interface:
- probe_dispatcher : sondas de alcançabilidade e HTTP a partir de uma interface.
- ping_service     : argv e parsing da saída do ping do sistema.
- http_probe       : troca HTTP única via httpx com bind de origem.
- process_guard    : encerramento de processos com lista de PIDs protegidos.
- export_service   : exportação de registros em texto tabulado.
- state_service    : fachada NetworkStateService usada por CLI e API.
"""
