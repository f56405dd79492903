import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import os
from stable_baselines3.common.callbacks import BaseCallback

# Saves the model every `save_interval` timesteps, counted across all parallel envs
class SaveOnIntervalCallback(BaseCallback):
    def __init__(self, save_interval: int, save_path: str, name_prefix: str = "model", verbose=1):
        super().__init__(verbose)
        self.save_interval = save_interval
        self.save_path = save_path
        self.name_prefix = name_prefix
        self.last_save = 0

    def _init_callback(self) -> None:
        os.makedirs(self.save_path, exist_ok=True)

    def _on_step(self) -> bool:
        # num_timesteps grows by n_envs per call, so compare against the last save
        if self.num_timesteps - self.last_save >= self.save_interval:
            self.last_save = self.num_timesteps
            save_file = os.path.join(self.save_path, f'{self.name_prefix}_{self.num_timesteps}')
            self.model.save(save_file)
            if self.verbose > 0:
                print(f'Saving model to {save_file}.zip')
        return True


class NectarCallback(BaseCallback):
    """Logs the mean nectar obtained over recent episodes."""

    def __init__(self, log_dir, eval_freq=10000, verbose=0):
        super().__init__(verbose)
        self.log_dir = log_dir
        self.eval_freq = eval_freq
        self.best_mean_nectar = 0.0
        self.nectar_history = []

    def _on_step(self) -> bool:
        if self.n_calls % self.eval_freq == 0 and len(self.model.ep_info_buffer) > 0:
            recent_episodes = list(self.model.ep_info_buffer)[-10:]
            nectar = [ep_info['nectar_obtained'] for ep_info in recent_episodes if 'nectar_obtained' in ep_info]

            if nectar:
                mean_nectar = float(np.mean(nectar))
                self.nectar_history.append(mean_nectar)
                self.logger.record("nectar/mean_obtained", mean_nectar)

                with open(os.path.join(self.log_dir, "training_log.txt"), "a") as f:
                    f.write(f"[Step {self.num_timesteps}] Mean nectar obtained: {mean_nectar:.3f}\n")

                if mean_nectar > self.best_mean_nectar:
                    self.best_mean_nectar = mean_nectar
                    if self.verbose > 0:
                        print(f"New best mean nectar: {mean_nectar:.3f}")

        return True


def visualise_training_logs(metric_name: str, title: str, log_dir: str, window: int = 50):
    log_file = os.path.join(log_dir, "progress.csv")
    df = pd.read_csv(log_file)

    if metric_name not in df:
        print(f"Metric {metric_name} not found in {log_file}")
        return None

    rewards = df[metric_name].dropna()
    timesteps = df["time/total_timesteps"].loc[rewards.index]
    if len(rewards) == 0:
        print(f"No values logged for {metric_name} yet")
        return None

    window = max(1, min(window, len(rewards)))
    smoothed = np.convolve(rewards, np.ones(window)/window, mode="valid")
    timesteps = timesteps.iloc[-len(smoothed):]

    plt.figure(figsize=(10, 6))
    plt.plot(timesteps/1e6, smoothed, color="deepskyblue", linewidth=2)
    plt.xlabel("Number of Timesteps (millions)")
    plt.ylabel(title)
    plt.title(f"{title} vs Timesteps Smoothed")
    plt.grid(True)

    # Save the plot as PNG in the log directory
    output_file = os.path.join(log_dir, f"{title}_smoothed.png")
    plt.savefig(output_file, dpi=150, bbox_inches='tight')
    plt.close()
    print(f"Plot saved to {output_file}")
    return output_file
