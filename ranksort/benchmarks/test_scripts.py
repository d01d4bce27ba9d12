import io

import numpy as np
import pandas as pd

from ranksort.benchmarks import correctness_check, run_benchmarks, run_sort


def test_run_sort_with_flags(capsys):
    assert run_sort.main(['--backend', 'numpy', '--max-value', '10',
                          '--size', '8', '--seed', '1']) == 0
    out = capsys.readouterr().out
    assert 'Parallel Sorted Array' in out
    assert 'Parallel execution duration (ns):' in out
    assert 'MergeSort execution duration (ns):' in out


def test_run_sort_prompts_on_stdin(capsys):
    stdin = io.StringIO('50\n12\n')
    assert run_sort.main(['--backend', 'numpy', '--quiet'], stdin=stdin) == 0
    out = capsys.readouterr().out
    assert 'Choose a max value:' in out
    assert 'Choose an array size:' in out
    assert 'Parallel Sorted Array' not in out


def test_run_sort_bad_answer_is_zero(capsys):
    stdin = io.StringIO('abc\n5\n')
    assert run_sort.main(['--backend', 'numpy'], stdin=stdin) == 1
    assert 'max_value must be > 0' in capsys.readouterr().out


def test_prompt_int():
    assert run_sort.prompt_int('?', io.StringIO(' 17 \n')) == 17
    assert run_sort.prompt_int('?', io.StringIO('x\n')) == 0


def test_correctness_check_passes():
    all_pass, results = correctness_check.run_correctness_check(backend='numpy', verbose=False)
    assert all_pass
    assert all(r['unplaced'] == 0 for r in results)


def test_check_sorted_permutation_flags_problems():
    data = np.array([3, 1, 2])
    assert correctness_check.check_sorted_permutation(data, np.array([1, 2, 3])) == []
    assert correctness_check.check_sorted_permutation(data, np.array([2, 1, 3]))
    assert correctness_check.check_sorted_permutation(data, np.array([1, 1, 3]))


def test_benchmark_exp2_writes_csv(tmp_path, monkeypatch):
    monkeypatch.setattr(run_benchmarks, 'RESULTS_DIR', str(tmp_path))
    sorter = run_benchmarks.RankSorter(run_benchmarks.create_context('numpy', seed=0))
    df = run_benchmarks.exp2_duplicates(sorter, smoke=True, repeats=1)
    assert (tmp_path / 'exp2_duplicates.csv').exists()
    assert list(pd.read_csv(tmp_path / 'exp2_duplicates.csv')['N']) == list(df['N'])
    assert (df['unplaced'] == 0).all()


def test_run_sort_empty_array_any_max_value(capsys):
    assert run_sort.main(['--backend', 'numpy', '--max-value', '0', '--size', '0']) == 0
    out = capsys.readouterr().out
    assert '[ERROR]' not in out
    assert 'Parallel execution duration (ns): 0' in out


def test_run_sort_two_bad_answers(capsys):
    assert run_sort.main(['--backend', 'numpy'], stdin=io.StringIO('x\ny\n')) == 0
    assert 'MergeSort Sorted Array' in capsys.readouterr().out
