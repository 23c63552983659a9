"""Prueba de concurrencia: registros simultáneos del mismo username."""

import threading

from account_service.errors import ConflictError
from account_service.store import CredentialStore


def test_concurrent_registration_single_winner(database):
    """
    Lanza varios registros del mismo username a la vez, cada uno con su propia
    sesión, y comprueba que exactamente uno tiene éxito.
    """
    num_threads = 5
    barrier = threading.Barrier(num_threads)
    results = [None] * num_threads

    def register(index: int):
        db = database.session()
        try:
            store = CredentialStore(db)
            barrier.wait()
            store.create("racer", "NG", "+2348012345678", f"Pass{index}!")
            results[index] = "created"
        except ConflictError:
            results[index] = "conflict"
        finally:
            db.close()

    threads = [threading.Thread(target=register, args=(i,)) for i in range(num_threads)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert results.count("created") == 1, f"Resultados: {results}"
    assert results.count("conflict") == num_threads - 1, f"Resultados: {results}"

    db = database.session()
    try:
        store = CredentialStore(db)
        winner = results.index("created")
        assert store.verify("racer", f"Pass{winner}!")
    finally:
        db.close()
