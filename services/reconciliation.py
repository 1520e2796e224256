from typing import Dict, Iterable, List


def ids_to_delete(remote_ids: Iterable, local_rows: Iterable[Dict], key: str = 'id') -> List:
    """Идентификаторы, которые есть в облаке, но исчезли из текущей коллекции.

    Порядок совпадает с порядком remote_ids, повторы убираются.
    """
    current_ids = {row[key] for row in local_rows}
    result = []
    seen = set()
    for remote_id in remote_ids:
        if remote_id in current_ids or remote_id in seen:
            continue
        seen.add(remote_id)
        result.append(remote_id)
    return result
