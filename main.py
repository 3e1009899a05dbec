import pandas as pd
import os
import time

# Import modules
from data_generator import generate_synthetic_data, to_series
from climate_window import climate_accumulator
from exceptions import TSSRError
from tssrestrend import TSSRestrendEngine


def run_pipeline(data_path="synthetic_vi_climate.csv"):
    print("================================================================================")
    print("STARTING TSS-RESTREND PIPELINE")
    print("================================================================================")
    start_time = time.time()

    # 1. Data Generation (Date, Scenario, Precip, Temp, VI)
    print("\n[STEP 1] Loading Data...")
    if not os.path.exists(data_path):
        df = generate_synthetic_data()
        df.to_csv(data_path, index=False)
        print(f"Generated {len(df)} rows for {df['Scenario'].nunique()} sites.")
    else:
        print(f"Using existing {data_path}")
        df = pd.read_csv(data_path)

    engine = TSSRestrendEngine(sig=0.05, h=0.15)
    summaries = []
    chow_tables = []
    windows = []

    for site in df['Scenario'].unique():
        # 2. Climate accumulation tables
        print(f"\n[STEP 2] Building accumulation tables for {site}...")
        veg, precip, temp = to_series(df, site)
        acp_table = climate_accumulator(veg, precip)
        act_table = climate_accumulator(veg, temp)
        print(f"{len(acp_table)} windows over {len(veg)} months.")

        # 3. TSS-RESTREND
        print(f"\n[STEP 3] Running TSS-RESTREND for {site}...")
        try:
            result = engine.run(veg, acp_table=acp_table, act_table=act_table)
        except TSSRError as err:
            print(f"Skipping {site}: {err}")
            continue

        summary = result.summary_frame()
        summary.insert(0, 'Site', site)
        summaries.append(summary)

        chow = result.ols_summary['chow_ind'].copy()
        chow.insert(0, 'Site', site)
        chow_tables.append(chow)

        acum = result.acum_df.copy()
        acum.insert(0, 'Site', site)
        windows.append(acum)

        print(f"Method: {result.summary.method}  Total change: {result.summary.total_change:.4f}")

    # 4. Outputs
    print("\n[STEP 4] Writing Outputs...")
    if summaries:
        final_df = pd.concat(summaries, ignore_index=True)
        final_df.to_csv("tssr_summary.csv", index=False)
        pd.concat(windows, ignore_index=True).to_csv("tssr_windows.csv", index=False)
        pd.concat(chow_tables, ignore_index=True).to_csv("tssr_breakpoints.csv", index=False)

        print("\nMethod counts:")
        print(final_df['Method'].value_counts())

    elapsed = time.time() - start_time
    print("\n================================================================================")
    print(f"PIPELINE COMPLETE in {elapsed:.2f} seconds.")
    print("Outputs saved:")
    print("- tssr_summary.csv (Results)")
    print("- tssr_windows.csv (Climate Windows)")
    print("- tssr_breakpoints.csv (Breakpoint Tests)")
    print("================================================================================")

if __name__ == "__main__":
    run_pipeline()
