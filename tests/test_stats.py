import threading


def test_counters_are_thread_safe(server) -> None:
    stats = server.stats_manager

    def bump():
        for _ in range(1000):
            stats.inc("msgs_forwarded")

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert stats.get("msgs_forwarded") == 4000


def test_unknown_counter_reads_zero(server) -> None:
    assert server.stats_manager.get("nothing") == 0


def test_format_stats_reports_sessions_and_counts(server, join) -> None:
    server.stats_manager.set_start_time()
    join("Ann")
    join("Bo")
    server.stats_manager.inc("rejected")

    text = server.stats_manager.format_stats()

    assert "clients=2 max_clients=4" in text
    assert "rejected=1" in text
    assert "joins=2" in text
    assert "bytes_out=" in text
